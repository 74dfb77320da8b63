#Request lifecycle rules:
#pending -> matched -> accepted -> in_progress -> completed
#cancelled from any pre-completion state, no_match from pending after retries run out.

from .request_state import ALLOWED_SOURCES, RequestStateError, can_transition, transition

__all__ = ["ALLOWED_SOURCES", "RequestStateError", "can_transition", "transition"]
