from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

# Chrome reports tabs outside any user-defined tab group with this id.
TAB_GROUP_ID_NONE = -1


class Tab(BaseModel):
    """One open browser tab, as reported by the host."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    url: Optional[str] = None
    last_accessed: Optional[float] = Field(default=None, alias="lastAccessed")
    group_id: int = Field(default=TAB_GROUP_ID_NONE, alias="groupId")


class ActionResult(BaseModel):
    action: str
    ok: bool = True
    closed: int = 0
    message: str


class ClassifyRequest(BaseModel):
    action: Literal["classify"] = "classify"
    text: str = Field(min_length=1)


class ClassifyResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Literal["complete"] = "complete"
    output: str
    num_tokens: int = Field(default=0, alias="numTokens")
    interrupted: bool = False


class ContextMenuClick(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    menu_item_id: str = Field(alias="menuItemId")
    selection_text: Optional[str] = Field(default=None, alias="selectionText")
    tab_id: Optional[int] = Field(default=None, alias="tabId")
