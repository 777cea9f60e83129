import time
from functools import partial
from typing import Any, Callable, Dict, Optional

from langgraph.graph import StateGraph, START, END
from loguru import logger

from pipeline.config import Settings
from pipeline.nodes.attribute import attribute, track_visit
from pipeline.nodes.capture import capture
from pipeline.nodes.gate import SubmissionGate, gate
from pipeline.nodes.persist import persist
from pipeline.nodes.score import score
from pipeline.nodes.screen import screen
from pipeline.state import AttributionRecord, LeadState


class PipelineContext:
    """Collaborators shared by the workflow nodes."""

    def __init__(self, store, sink, settings: Settings, clock: Callable[[], float] = time.time):
        self.store = store
        self.sink = sink
        self.settings = settings
        self.clock = clock
        self.gate = SubmissionGate(store, settings.submission_cooldown_seconds)


def _continue_unless_rejected(next_node: str):
    def decide(state: LeadState) -> str:
        outcome = state.get("outcome")
        if outcome:
            logger.info(f"Submission stopped before {next_node}: {outcome}")
            return "end"
        return next_node
    return decide


def build_workflow(ctx: PipelineContext):
    """Build the lead submission workflow."""
    workflow = StateGraph(LeadState)

    # Add nodes
    workflow.add_node("capture", capture)
    workflow.add_node("attribute", partial(attribute, ctx=ctx))
    workflow.add_node("screen", screen)
    workflow.add_node("gate", partial(gate, ctx=ctx))
    workflow.add_node("score", score)
    workflow.add_node("persist", partial(persist, ctx=ctx))

    # Add edges
    workflow.add_edge(START, "capture")
    workflow.add_edge("capture", "attribute")
    workflow.add_edge("attribute", "screen")

    # Bots and rate-limited submitters never reach scoring or the sink
    workflow.add_conditional_edges(
        "screen",
        _continue_unless_rejected("gate"),
        {"gate": "gate", "end": END}
    )
    workflow.add_conditional_edges(
        "gate",
        _continue_unless_rejected("score"),
        {"score": "score", "end": END}
    )

    workflow.add_edge("score", "persist")
    workflow.add_edge("persist", END)

    return workflow.compile()


class LeadPipeline:
    """Entry point for page-view attribution and lead submissions."""

    def __init__(self, ctx: PipelineContext):
        self.ctx = ctx
        self.graph = build_workflow(ctx)

    def submit(self, payload: Dict[str, Any]) -> LeadState:
        """
        Run one submission through the workflow.

        Returns the final state; outcome is "accepted", "bot_rejected" or
        "rate_limited". Persistence failures raise PersistenceError.
        """
        initial_state: LeadState = {
            "raw": payload,
            "submitted_at": self.ctx.clock(),
            "errors": [],
            "score_reasons": [],
        }
        return self.graph.invoke(initial_state)

    def track_visit(self, visitor_id: Optional[str], url: Optional[str],
                    referrer: Optional[str] = None) -> AttributionRecord:
        """Resolve (and persist, when UTM keys are present) a visitor's attribution."""
        now_ms = int(self.ctx.clock() * 1000)
        return track_visit(
            self.ctx.store, visitor_id, url, referrer, now_ms, self.ctx.settings.attribution_ttl_ms
        )
