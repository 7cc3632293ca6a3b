"""Pipeline engine — orchestrates one market intelligence report run.

Flow per run:
  1. Fetching   — two branches in parallel:
                    a. RenderAgent.capture → chart PNG (or RenderError)
                    b. SourceFetcher → NewsAggregator → AnalysisChain
  2. Assembling — ReportAssembler combines both branches with fallbacks
  3. Persisted / PersistFailed — HistoryStore.append (best-effort)
  4. Done

A run-level timeout bounds the Fetching phase. When it expires the run sets a
cancel token: the render stops at its next step, the source join returns and
no further AI provider is called. Calls already in flight end on their own
timeouts; their results are discarded. The run assembles from whatever the news
branch had produced so far (headlines, candles) plus the analysis fallback. Retries live
inside the individual sources/providers; a run never re-enters Fetching.
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from market_intel.core.config import DEFAULT_CONFIG, get_env, merge_config
from market_intel.core.errors import RenderError
from market_intel.core.logger import logger
from market_intel.models.datatypes import (
    AnalysisResult,
    HeadlineItem,
    MarketSeries,
    Mode,
    ReportRecord,
)
from market_intel.pipeline.aggregator import NewsAggregator
from market_intel.pipeline.analysis_chain import AnalysisChain, fallback_result
from market_intel.pipeline.assembler import RenderResult, ReportAssembler
from market_intel.pipeline.fetcher import SourceFetcher
from market_intel.providers.analysis import build_generators
from market_intel.providers.market import YFinanceProvider
from market_intel.providers.news import build_sources
from market_intel.providers.render import RenderAgent, select_launch_strategy
from market_intel.storage.history import HistoryStore


class RunState(str, Enum):
    IDLE = "Idle"
    FETCHING = "Fetching"
    ASSEMBLING = "Assembling"
    PERSISTED = "Persisted"
    PERSIST_FAILED = "PersistFailed"
    DONE = "Done"


_TRANSITIONS = {
    RunState.IDLE: {RunState.FETCHING},
    RunState.FETCHING: {RunState.ASSEMBLING},
    RunState.ASSEMBLING: {RunState.PERSISTED, RunState.PERSIST_FAILED},
    RunState.PERSISTED: {RunState.DONE},
    RunState.PERSIST_FAILED: {RunState.DONE},
    RunState.DONE: set(),
}


@dataclass
class PipelineRun:
    """State of a single run. Transitions only move forward."""
    mode: Mode
    state: RunState = RunState.IDLE
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    history: List[RunState] = field(default_factory=lambda: [RunState.IDLE])

    def advance(self, new_state: RunState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal run transition {self.state.value} → {new_state.value}")
        logger.info(f"PipelineRun[{self.mode.value}]: {self.state.value} → {new_state.value}")
        self.state = new_state
        self.history.append(new_state)


class _NewsProgress:
    """What the news branch has produced so far; read after a run-level timeout."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.headlines: List[HeadlineItem] = []
        self.market_series: Optional[MarketSeries] = None
        self.analysis: Optional[AnalysisResult] = None

    def update(self, **values: Any) -> None:
        with self._lock:
            for key, value in values.items():
                setattr(self, key, value)

    def snapshot(self) -> "_NewsProgress":
        copy = _NewsProgress()
        with self._lock:
            copy.headlines = list(self.headlines)
            copy.market_series = self.market_series
            copy.analysis = self.analysis
        return copy


class ReportPipeline:
    """Orchestrates the full report pipeline.

    Args:
        render_agent: Chart capture.
        fetcher: Concurrent source + candle fetch.
        aggregator: Headline merge/filter/truncate.
        chain: AI provider fallback chain.
        assembler: Record builder.
        store: History log (shared across runs).
        chart: ``config["chart"]`` section (url, selector, viewport, timeouts).
        run_timeout_seconds: Upper bound on the Fetching phase.
    """

    def __init__(
        self,
        render_agent: RenderAgent,
        fetcher: SourceFetcher,
        aggregator: NewsAggregator,
        chain: AnalysisChain,
        assembler: ReportAssembler,
        store: HistoryStore,
        chart: Optional[Dict[str, Any]] = None,
        run_timeout_seconds: float = 60,
    ) -> None:
        self.render_agent = render_agent
        self.fetcher = fetcher
        self.aggregator = aggregator
        self.chain = chain
        self.assembler = assembler
        self.store = store
        self.chart = merge_config(DEFAULT_CONFIG["chart"], chart)
        self.run_timeout_seconds = run_timeout_seconds

    # ── public ────────────────────────────────────────────────────────────────

    def run(self, mode: Mode = Mode.DAILY) -> ReportRecord:
        """Run one report end to end and return the assembled record.

        Persist failures are logged and do not affect the returned record.
        """
        run = PipelineRun(mode=mode)
        progress = _NewsProgress()
        cancel = threading.Event()

        run.advance(RunState.FETCHING)
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="report-branch")
        try:
            render_future = executor.submit(self._render_branch, cancel)
            news_future = executor.submit(self._news_branch, mode, progress, cancel)
            done, not_done = wait([render_future, news_future], timeout=self.run_timeout_seconds)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if not_done:
            cancel.set()
            logger.warning(
                f"ReportPipeline: run timeout ({self.run_timeout_seconds}s) hit with "
                f"{len(not_done)} branch(es) in flight, assembling from partial results"
            )

        render_result: RenderResult = None
        if render_future in done:
            render_result = render_future.result()

        if news_future in done:
            exc = news_future.exception()
            if exc is not None:
                logger.error(f"ReportPipeline: news branch failed: {exc}", exc_info=exc)
        news = progress.snapshot()
        analysis = news.analysis or fallback_result(news.headlines)

        run.advance(RunState.ASSEMBLING)
        record = self.assembler.assemble(
            render_result,
            analysis,
            mode,
            headlines=news.headlines,
            market_series=news.market_series,
        )

        persisted = self.store.append(record)
        run.advance(RunState.PERSISTED if persisted else RunState.PERSIST_FAILED)
        run.advance(RunState.DONE)

        logger.info(f"ReportPipeline: record {record.id} done | {record.source_log}")
        return record

    def history(self) -> List[ReportRecord]:
        return self.store.read_all()

    # ── internal ──────────────────────────────────────────────────────────────

    def _render_branch(self, cancel: threading.Event) -> RenderResult:
        chart = self.chart
        try:
            return self.render_agent.capture(
                chart["url"],
                chart["ready_selector"],
                viewport=chart["viewport"],
                timeout_ms=int(chart["timeout_ms"]),
                ready_timeout_ms=int(chart["ready_timeout_ms"]),
                settle_ms=int(chart["settle_ms"]),
                cancel=cancel,
            )
        except RenderError as exc:
            logger.warning(f"ReportPipeline: render failed ({exc}), placeholder image will be used")
            return exc
        except Exception as exc:
            logger.error(f"ReportPipeline: render raised unexpectedly: {exc}", exc_info=True)
            return None

    def _news_branch(self, mode: Mode, progress: _NewsProgress, cancel: threading.Event) -> None:
        fetched = self.fetcher.fetch_all(mode, cancel=cancel)
        progress.update(market_series=fetched.market_series)

        headlines = self.aggregator.aggregate([items for _, items in fetched.by_source], mode)
        progress.update(headlines=headlines)

        if cancel.is_set():
            return
        analysis = self.chain.analyze(headlines, mode, cancel=cancel)
        if not cancel.is_set():
            progress.update(analysis=analysis)


# ── factory ───────────────────────────────────────────────────────────────────

def build_pipeline(
    config: Optional[Dict[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
    store: Optional[HistoryStore] = None,
) -> ReportPipeline:
    """Wire every component from config and environment.

    Args:
        config: Parsed config (merged over ``DEFAULT_CONFIG``).
        env: Environment mapping for render-strategy flags; defaults to ``os.environ``.
        store: Existing history store to share; built from ``config["history"]`` if omitted.
    """
    config = merge_config(DEFAULT_CONFIG, config)
    env = os.environ if env is None else env
    news_cfg = config["news"]
    market_cfg = config["market"]
    analysis_cfg = config["analysis"]

    strategy = select_launch_strategy(config["render"], env)
    logger.info(f"build_pipeline: render strategy = {strategy.name}")

    sources = build_sources(
        config["sources"],
        timeout=news_cfg["source_timeout_seconds"],
        summary_max_chars=news_cfg["summary_max_chars"],
    )
    market = YFinanceProvider(windows={
        Mode.DAILY.value: market_cfg["daily"],
        Mode.WEEKLY.value: market_cfg["weekly"],
    })
    generators = build_generators(
        analysis_cfg["models"],
        {"gemini": get_env("GEMINI_API_KEY"), "openai": get_env("OPENAI_API_KEY")},
    )
    logger.info(
        f"build_pipeline: {len(sources)} sources, "
        f"providers={[g.identifier for g in generators] or 'none (fallback only)'}"
    )

    return ReportPipeline(
        render_agent=RenderAgent(strategy),
        fetcher=SourceFetcher(
            sources,
            market=market,
            market_symbol=market_cfg["symbol"],
            timeout_seconds=news_cfg["source_timeout_seconds"],
        ),
        aggregator=NewsAggregator(
            max_items=news_cfg["max_items"],
            max_chars=news_cfg["summary_max_chars"],
        ),
        chain=AnalysisChain(generators, timeout_seconds=analysis_cfg["timeout_seconds"]),
        assembler=ReportAssembler(placeholder_image=config["chart"]["placeholder_image"]),
        store=store or HistoryStore(config["history"]["path"]),
        chart=config["chart"],
        run_timeout_seconds=config["pipeline"]["run_timeout_seconds"],
    )
