"""
Services package for the Learner Engagement Engine.

This package contains session-level services:
- Consent store: persists the learner's camera consent between sessions
- Engagement event log: in-memory buffer of fired interventions for polling
"""
