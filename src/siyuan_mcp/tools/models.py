"""Typed argument models for every tool.

Arguments arrive as loosely typed JSON.  Text fields accept numbers and
``null`` the way agents tend to send them, and required arguments are checked
after coercion so a blank string is reported as ``缺少参数 <name>``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)
from pydantic_core import PydanticCustomError

from siyuan_mcp.notes.models import InsertMode


def _coerce_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def _coerce_text_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    return value


Text = Annotated[str, BeforeValidator(_coerce_text)]
TextList = Annotated[list[str], BeforeValidator(_coerce_text_list)]

_FLAG = TypeAdapter(bool)


def raw_flag(arguments: Mapping[str, Any], alias: str) -> bool:
    """Read a boolean argument before validation; anything unparseable is False."""
    try:
        return _FLAG.validate_python(arguments.get(alias, False))
    except ValidationError:
        return False


class ToolArgs(BaseModel):
    """Base for tool arguments; ``required`` lists fields that must not be blank."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    required: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _check_required(self) -> ToolArgs:
        for name in self.required:
            value = getattr(self, name)
            if value is None or value == [] or (isinstance(value, str) and not value.strip()):
                alias = type(self).model_fields[name].alias or name
                raise PydanticCustomError("tool_argument", "缺少参数 {name}", {"name": alias})
        return self


# ---------------------------------------------------------------------------
# Note tools
# ---------------------------------------------------------------------------


class SqlQueryArgs(ToolArgs):
    required = ("sql",)
    sql: Text = ""


class BlockContentArgs(ToolArgs):
    required = ("id",)
    id: Text = ""
    format: Text = "markdown"


class InsertBlockArgs(ToolArgs):
    required = ("data",)
    data_type: Text = Field(default="markdown", alias="dataType")
    data: Text = ""
    parent_id: Text = Field(default="", alias="parentID")
    append_parent_id: Text = Field(default="", alias="appendParentID")
    previous_id: Text = Field(default="", alias="previousID")
    next_id: Text = Field(default="", alias="nextID")
    dry_run: bool = Field(default=False, alias="dryRun")


class UpdateBlockArgs(ToolArgs):
    required = ("id", "data")
    data_type: Text = Field(default="markdown", alias="dataType")
    data: Text = ""
    id: Text = ""
    dry_run: bool = Field(default=False, alias="dryRun")


class CreateDocumentArgs(ToolArgs):
    required = ("notebook", "path")
    notebook: Text = ""
    path: Text = ""
    markdown: Text = ""


class NoArgs(ToolArgs):
    pass


class CreateNotebookArgs(ToolArgs):
    required = ("name",)
    name: Text = ""


class DocTreeArgs(ToolArgs):
    required = ("notebook",)
    notebook: Text = ""
    path: Text = "/"
    sort_mode: int = Field(default=15, alias="sortMode")


class RenameDocumentArgs(ToolArgs):
    required = ("id", "title")
    id: Text = ""
    title: Text = ""


class MoveDocumentsArgs(ToolArgs):
    required = ("from_ids", "to_id")
    from_ids: TextList = Field(default_factory=list, alias="fromIDs")
    to_id: Text = Field(default="", alias="toID")


class BlockIdArgs(ToolArgs):
    required = ("id",)
    id: Text = ""


class SetBlockAttrsArgs(ToolArgs):
    required = ("id", "attrs")
    id: Text = ""
    attrs: dict[str, Any] | None = None


class DatabaseArgs(ToolArgs):
    """``siyuan_database``; which fields matter depends on ``operation``."""

    required = ("operation",)
    operation: Text = ""
    keyword: Text = ""
    av_id: Text = Field(default="", alias="avID")
    view_id: Text = Field(default="", alias="viewID")
    page_size: int = Field(default=9999999, alias="pageSize")
    page: int = 1
    blocks_values: list[Any] | None = Field(default=None, alias="blocksValues")
    block_ids: TextList = Field(default_factory=list, alias="blockIDs")
    item_ids: TextList = Field(default_factory=list, alias="itemIDs")
    key_id: Text = Field(default="", alias="keyID")
    item_id: Text = Field(default="", alias="itemID")
    value: dict[str, Any] | None = None
    values: list[Any] | None = None
    block_id: Text = Field(default="", alias="blockID")
    key_name: Text = Field(default="", alias="keyName")
    key_type: Text = Field(default="", alias="keyType")
    key_icon: Text = Field(default="", alias="keyIcon")
    previous_key_id: Text = Field(default="", alias="previousKeyID")
    src_ids: TextList = Field(default_factory=list, alias="srcIDs")


# ---------------------------------------------------------------------------
# Media tools
# ---------------------------------------------------------------------------


class NoteTargetArgs(ToolArgs):
    """Where (and whether) to insert imported images into a note."""

    note_block_id: Text = Field(default="", alias="noteBlockId")
    mode: InsertMode = "append"
    anchor_block_id: Text = Field(default="", alias="anchorBlockId")
    dry_run: bool = Field(default=False, alias="dryRun")
    alt_prefix: Text = Field(default="image", alias="altPrefix")


class ImportImageUrlsArgs(NoteTargetArgs):
    required = ("urls",)
    urls: TextList = Field(default_factory=list)
    file_names: TextList = Field(default_factory=list, alias="fileNames")


class ExtractPageImagesArgs(NoteTargetArgs):
    required = ("url",)
    url: Text = ""
    limit: int = 20
    import_images: bool = Field(default=False, alias="importImages")


class CaptureScreenshotArgs(NoteTargetArgs):
    required = ("url",)
    url: Text = ""
    width: int = Field(default=1280, ge=100, le=4096)
    height: int | None = Field(default=None, ge=100, le=16384)
    full_page: bool = Field(default=False, alias="fullPage")
    file_name: Text = Field(default="", alias="fileName")


class InsertImagesToNoteArgs(NoteTargetArgs):
    required = ("note_block_id",)
    asset_paths: TextList = Field(default_factory=list, alias="assetPaths")
    assets: list[dict[str, Any]] = Field(default_factory=list)


MODE_ENUM: list[str] = ["append", "prepend", "after", "before"]
DatabaseOperation = Literal[
    "searchDatabase",
    "getColumns",
    "renderDatabase",
    "addDetachedRows",
    "addBoundBlocks",
    "setAttribute",
    "batchSetAttributes",
    "getDatabasesForBlock",
    "getItemIDsByBlockIDs",
    "getBlockIDsByItemIDs",
    "addColumn",
    "removeColumn",
    "removeRows",
]
