"""Weekly update generation pipeline.

Turns raw notes into a Markdown update for one of three audiences:
- Exec
- Cross-functional
- Engineering

Live generation goes through Gemini; without provider credentials a
deterministic stub with the same section schema is returned instead.
"""
