"""
Domain layer - reply settings model.

This layer contains:
- KeywordRule (one entry of the keyword table, tagged by kind)
- ReplySettings (immutable settings snapshot)
- Validation and upgrade of persisted settings documents

No dependencies on infrastructure or frameworks.
"""
