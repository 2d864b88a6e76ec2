from enum import IntEnum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from src.tools.registry import ToolSpec


class IssuePriority(IntEnum):
    none = 0
    urgent = 1
    high = 2
    medium = 3
    low = 4


# ---------------------
# Input model
# ---------------------
class CreateIssueInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: StrictStr = Field(..., description="Title of the issue")
    teamId: StrictStr = Field(..., min_length=1, description="ID of the team")
    description: Optional[StrictStr] = Field(default=None, description="Description of the issue")
    assigneeId: Optional[StrictStr] = Field(default=None, description="ID of the assignee")
    priority: Optional[IssuePriority] = Field(default=None, description="0 none, 1 urgent .. 4 low")

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must be a non-empty string")
        return value


# ---------------------
# Create issue function
# ---------------------
def create_issue(client: Any, params: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(params)
    if "priority" in payload:
        payload["priority"] = int(payload["priority"])
    return client.create_issue(**payload)


CREATE_ISSUE = ToolSpec(
    name="createIssue",
    description="Create a new issue in Linear",
    input_model=CreateIssueInput,
    invoke=create_issue,
)
