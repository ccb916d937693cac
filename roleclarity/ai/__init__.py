"""
Role Clarity Platform
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, timeout, cost tracking)
    - prompt_registry: prompt templates (built-in + YAML overrides)
    - schemas: pydantic output contracts + strict parsing
    - backend: ClarityBackend interface and the gateway-backed implementation
"""
