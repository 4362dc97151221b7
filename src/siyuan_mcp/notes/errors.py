"""Error types for the note-insertion protocol."""


class NoteError(Exception):
    """Base error for block resolution and insertion failures."""


class InvalidBlockIdError(NoteError):
    """A value that must be a block id does not look like one."""

    def __init__(self, block_id: str) -> None:
        self.block_id = block_id
        super().__init__(f"Invalid block id: {block_id!r}")


class BlockNotFoundError(NoteError):
    """The backend has no block with this id."""

    def __init__(self, block_id: str) -> None:
        self.block_id = block_id
        super().__init__(f"Block not found: {block_id}")


class AnchorMismatchError(NoteError):
    """An insertion anchor lives in a different document than the note."""

    def __init__(self, anchor_id: str, doc_id: str, anchor_doc_id: str) -> None:
        self.anchor_id = anchor_id
        self.doc_id = doc_id
        self.anchor_doc_id = anchor_doc_id
        super().__init__(
            f"anchorBlockId {anchor_id} belongs to document {anchor_doc_id}, "
            f"not to the target document {doc_id}"
        )
