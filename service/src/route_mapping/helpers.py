def byte_offset(text: str, index: int) -> int:
    """Convert a character index into a UTF-8 byte offset."""
    return len(text[:index].encode("utf-8"))
