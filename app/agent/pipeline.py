"""
Resolution pipeline (LangGraph): rate check → knowledge lookup → image stage
(only with an image) → text stage → fallback.

Every request gets a reply. Rate limits and rejected images end the run with a
canned message; provider failures and tripped breakers fall through to the
next stage; anything unexpected becomes the fallback reply.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, TypedDict

from langgraph.graph import END, StateGraph

from app.agent.providers import EMPTY, AnswerProvider, GeminiVisionProvider, OpenRouterTextProvider, ProviderOutcome
from app.core.circuit_breaker import CircuitBreaker
from app.core.config import FAQ_MATCH_THRESHOLD, FAQ_PATH, KB_HIT_CONSUMES_BUDGET
from app.core.errors import ImageValidationError
from app.core.rate_limiter import RateLimiter, TrafficClass
from app.core.security_log import log_security_event
from app.ingest.loader import load_knowledge_base
from app.services.image_validator import ImageInput, ImageValidator, ValidatedImage
from app.services.knowledge_service import KnowledgeMatcher

logger = logging.getLogger(__name__)

NO_MESSAGE_REPLY = "⚠️ No message received."
RATE_LIMIT_REPLY = "⚠️ Too many requests. Please slow down."
IMAGE_RATE_LIMIT_REPLY = "⚠️ Too many image requests. Please slow down."
FALLBACK_REPLY = "❌ Sorry, I cannot answer that right now. Please try again later."


class ReplySource(str, Enum):
    EMPTY_MESSAGE = "empty_message"
    RATE_LIMITED = "rate_limited"
    KNOWLEDGE = "knowledge"
    IMAGE_RATE_LIMITED = "image_rate_limited"
    IMAGE_REJECTED = "image_rejected"
    VISION = "vision"
    TEXT = "text"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Resolution:
    reply: str
    source: ReplySource


@dataclass
class _Ticket:
    """Rate-limit slots this request holds and has not yet recorded."""

    client_id: str
    held: set[TrafficClass] = field(default_factory=set)


class ResolutionState(TypedDict):
    client_id: str
    message: str
    image: ImageInput | None
    ticket: _Ticket
    stage: str
    reply: str
    source: ReplySource | None


class ResolutionPipeline:
    """
    Long-lived service object owning the limiter and breaker state.
    Thread-safe: resolve() may run concurrently from many request threads.
    """

    def __init__(
        self,
        matcher: KnowledgeMatcher | None = None,
        text_provider: AnswerProvider | None = None,
        vision_provider: AnswerProvider | None = None,
        rate_limiter: RateLimiter | None = None,
        breaker: CircuitBreaker | None = None,
        validator: ImageValidator | None = None,
        kb_hit_consumes_budget: bool = KB_HIT_CONSUMES_BUDGET,
    ) -> None:
        self.matcher = matcher if matcher is not None else KnowledgeMatcher()
        self.text_provider = text_provider if text_provider is not None else OpenRouterTextProvider()
        self.vision_provider = vision_provider if vision_provider is not None else GeminiVisionProvider()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self.breaker = breaker if breaker is not None else CircuitBreaker()
        self.validator = validator if validator is not None else ImageValidator()
        self.kb_hit_consumes_budget = kb_hit_consumes_budget
        self._graph = self._build_graph()

    # --- Graph ---

    def _build_graph(self):
        graph = StateGraph(ResolutionState)

        graph.add_node("rate_check", self._rate_check)
        graph.add_node("knowledge_lookup", self._knowledge_lookup)
        graph.add_node("image_stage", self._image_stage)
        graph.add_node("text_stage", self._text_stage)
        graph.add_node("fallback", self._fallback)

        graph.set_entry_point("rate_check")
        graph.add_conditional_edges(
            "rate_check", self._route_after_rate_check, {"knowledge_lookup": "knowledge_lookup", END: END}
        )
        graph.add_conditional_edges(
            "knowledge_lookup",
            self._route_after_knowledge,
            {"image_stage": "image_stage", "text_stage": "text_stage", END: END},
        )
        graph.add_conditional_edges("image_stage", self._route_after_image, {"text_stage": "text_stage", END: END})
        graph.add_conditional_edges("text_stage", self._route_after_text, {"fallback": "fallback", END: END})
        graph.add_edge("fallback", END)

        return graph.compile()

    # --- Nodes ---

    def _rate_check(self, state: ResolutionState) -> dict:
        ticket = state["ticket"]
        if not self.rate_limiter.reserve(ticket.client_id, TrafficClass.TEXT):
            logger.info("[pipeline:rate_check] text rate limit hit client=%s", ticket.client_id)
            log_security_event(f"Rate limit hit by {ticket.client_id}")
            return {"stage": "rate_check", "reply": RATE_LIMIT_REPLY, "source": ReplySource.RATE_LIMITED}
        ticket.held.add(TrafficClass.TEXT)
        return {"stage": "rate_check"}

    def _knowledge_lookup(self, state: ResolutionState) -> dict:
        answer = self.matcher.match(state["message"])
        if answer is None:
            return {"stage": "knowledge_lookup"}
        if self.kb_hit_consumes_budget:
            self._record(state["ticket"], TrafficClass.TEXT)
        return {"stage": "knowledge_lookup", "reply": answer, "source": ReplySource.KNOWLEDGE}

    def _image_stage(self, state: ResolutionState) -> dict:
        ticket = state["ticket"]
        if not self.rate_limiter.reserve(ticket.client_id, TrafficClass.IMAGE):
            logger.info("[pipeline:image_stage] image rate limit hit client=%s", ticket.client_id)
            log_security_event(f"Image rate limit hit by {ticket.client_id}")
            return {"stage": "image_stage", "reply": IMAGE_RATE_LIMIT_REPLY, "source": ReplySource.IMAGE_RATE_LIMITED}
        ticket.held.add(TrafficClass.IMAGE)

        try:
            image = self.validator.validate(state["image"])
        except ImageValidationError as e:
            logger.info("[pipeline:image_stage] image rejected kind=%s: %s", e.kind, e)
            log_security_event(f"Rejected image ({e.kind}) from {ticket.client_id}")
            return {"stage": "image_stage", "reply": e.user_message, "source": ReplySource.IMAGE_REJECTED}

        outcome = self._call(self.vision_provider, state["message"], image)
        if outcome.ok:
            self._record(ticket, TrafficClass.TEXT)
            self._record(ticket, TrafficClass.IMAGE)
            return {"stage": "image_stage", "reply": outcome.answer, "source": ReplySource.VISION}
        logger.info("[pipeline:image_stage] no vision answer, continuing to text stage")
        return {"stage": "image_stage"}

    def _text_stage(self, state: ResolutionState) -> dict:
        outcome = self._call(self.text_provider, state["message"], None)
        if outcome.ok:
            self._record(state["ticket"], TrafficClass.TEXT)
            return {"stage": "text_stage", "reply": outcome.answer, "source": ReplySource.TEXT}
        logger.info("[pipeline:text_stage] no text answer, using fallback")
        return {"stage": "text_stage"}

    def _fallback(self, state: ResolutionState) -> dict:
        logger.info("[pipeline:fallback] all answer sources failed or gave no response")
        return {"stage": "fallback", "reply": FALLBACK_REPLY, "source": ReplySource.FALLBACK}

    # --- Routing ---

    @staticmethod
    def _route_after_rate_check(state: ResolutionState) -> Literal["knowledge_lookup", "__end__"]:
        return END if state.get("reply") else "knowledge_lookup"

    @staticmethod
    def _route_after_knowledge(state: ResolutionState) -> Literal["image_stage", "text_stage", "__end__"]:
        if state.get("reply"):
            return END
        return "image_stage" if state.get("image") is not None else "text_stage"

    @staticmethod
    def _route_after_image(state: ResolutionState) -> Literal["text_stage", "__end__"]:
        return END if state.get("reply") else "text_stage"

    @staticmethod
    def _route_after_text(state: ResolutionState) -> Literal["fallback", "__end__"]:
        return END if state.get("reply") else "fallback"

    # --- Helpers ---

    def _call(self, provider: AnswerProvider, message: str, image: ValidatedImage | None) -> ProviderOutcome:
        """Breaker-guarded provider call. Denied, failed and overloaded calls all come back empty."""
        if not self.breaker.allow(provider.name):
            logger.info("[pipeline:call] %s breaker open, skipping", provider.name)
            return EMPTY
        try:
            outcome = provider.send(message, image)
        except Exception:
            logger.exception("[pipeline:call] %s raised", provider.name)
            return EMPTY
        if outcome.overloaded:
            self.breaker.report_overload(provider.name)
            return EMPTY
        if outcome.ok:
            self.breaker.report_success(provider.name)
        return outcome

    def _record(self, ticket: _Ticket, traffic: TrafficClass) -> None:
        self.rate_limiter.record(ticket.client_id, traffic)
        ticket.held.discard(traffic)

    # --- Entry point ---

    def resolve(self, client_id: str, message: str, image: ImageInput | None = None) -> Resolution:
        """Run one request through the pipeline. Never raises."""
        if not message or not message.strip():
            return Resolution(NO_MESSAGE_REPLY, ReplySource.EMPTY_MESSAGE)
        logger.info("[pipeline] [%s] User asked: %r image=%s", client_id, message, image is not None)
        ticket = _Ticket(client_id=client_id)
        initial: ResolutionState = {
            "client_id": client_id,
            "message": message,
            "image": image,
            "ticket": ticket,
            "stage": "",
            "reply": "",
            "source": None,
        }
        stage = ""
        try:
            final = self._graph.invoke(initial)
            reply = final.get("reply") or FALLBACK_REPLY
            source = final.get("source") or ReplySource.FALLBACK
            stage = final.get("stage", "")
        except Exception:
            logger.exception("[pipeline] resolution failed, using fallback")
            reply, source = FALLBACK_REPLY, ReplySource.FALLBACK
        finally:
            for traffic in list(ticket.held):
                self.rate_limiter.release(client_id, traffic)
            ticket.held.clear()
        logger.info(
            "[pipeline] OUT client=%s source=%s last_stage=%s reply_len=%d",
            client_id, source.value, stage, len(reply),
        )
        return Resolution(reply, source)


def build_pipeline() -> ResolutionPipeline:
    """Pipeline wired from environment configuration, with the FAQ loaded from FAQ_PATH."""
    entries = load_knowledge_base(FAQ_PATH)
    return ResolutionPipeline(matcher=KnowledgeMatcher(entries, threshold=FAQ_MATCH_THRESHOLD))
