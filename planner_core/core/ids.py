import uuid

def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"

"""
ID generation utilities & it provides:
- Plan step IDs
- Goal / subgoal IDs
- Audit event IDs

The main purpose:
Fresh identifiers on every normalization pass.
"""
