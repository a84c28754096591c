"""
Services Layer

Pure business logic services that:
- Accept domain inputs (slugs, sessions, team ids)
- Return domain outputs (models, engine state, dicts)
- Do NOT depend on HTTP request/response objects
- Raise MatchEngineError subclasses before mutating anything
"""
