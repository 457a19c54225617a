"""
Services Layer

Bracket business logic:
- Pure algorithms (score validation, seed placement, anti-rematch,
  round robin, group formation) take and return plain values
- Engines (generation, progression, standings) work through a
  BracketRepository and return Ok/Err results (see result.py)
- Nothing here depends on HTTP request/response objects
"""
