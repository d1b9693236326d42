from isuite.utils.auth import CredentialStore
from isuite.utils.graph import content_text, dump_messages, prepare_messages, process_llm_response
from isuite.utils.sanitizer import collapse_whitespace, derive_title

__all__ = [
    "CredentialStore",
    "content_text",
    "dump_messages",
    "prepare_messages",
    "process_llm_response",
    "derive_title",
    "collapse_whitespace",
]
