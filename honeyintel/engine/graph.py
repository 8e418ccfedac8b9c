from langgraph.graph import StateGraph, END
from honeyintel.engine.nodes import (
    TurnState, load_session, extract_intelligence, persist_session
)


def build_workflow():
    workflow = StateGraph(TurnState)

    workflow.add_node("load_session", load_session)
    workflow.add_node("extract_intelligence", extract_intelligence)
    workflow.add_node("persist_session", persist_session)

    workflow.set_entry_point("load_session")

    workflow.add_edge("load_session", "extract_intelligence")
    workflow.add_edge("extract_intelligence", "persist_session")
    workflow.add_edge("persist_session", END)

    return workflow.compile()
