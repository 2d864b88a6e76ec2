from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from src.tools.registry import ToolSpec


class ListIssuesInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    teamId: Optional[StrictStr] = Field(default=None, description="ID of the team to list issues from")
    first: StrictInt = Field(default=50, description="Number of issues to fetch")


def list_issues(client: Any, params: Dict[str, Any]) -> Dict[str, Any]:
    return client.issues(**params)


LIST_ISSUES = ToolSpec(
    name="listIssues",
    description="List issues from Linear",
    input_model=ListIssuesInput,
    invoke=list_issues,
)
