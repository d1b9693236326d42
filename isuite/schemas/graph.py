from typing import Annotated

from langgraph.graph.message import add_messages
from pydantic import BaseModel, Field


class GraphState(BaseModel):
    """
    State carried through one /chat request: the LangChain message list
    (system prompt excluded) and how many model steps have run.
    """

    # reducer: node updates are appended, ids are assigned on the way in
    messages: Annotated[list, add_messages] = Field(default_factory=list)

    step_count: int = Field(default=0, ge=0, description="Model steps taken so far")
