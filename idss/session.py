from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from idss.data import IngestionError
from idss.evaluator import evaluate_views
from idss.filters import DashboardState, DatasetLoaded, FilterEvent, transition
from idss.options import FilterOptions, build_options
from idss.records import OperatorRecord


logger = logging.getLogger(__name__)


class DashboardSession:
    """Holds the dataset and filter state across load cycles.

    Loads are identified by a generation token. Only the most recently started
    load may install its result; a superseded load is discarded when it
    completes, whatever order the loads resolve in. Token bookkeeping is
    locked so loads started from concurrent request threads stay ordered.
    """

    def __init__(self) -> None:
        self.records: List[OperatorRecord] = []
        self.state = DashboardState()
        self.error: Optional[str] = None
        self.failure: Optional[IngestionError] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def options(self) -> FilterOptions:
        return self.state.options

    @property
    def started(self) -> bool:
        return self._generation > 0

    def begin_load(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def complete_load(self, token: int, records: Sequence[OperatorRecord]) -> bool:
        options = build_options(records)
        with self._lock:
            if not self.is_current(token):
                logger.info("Discarding superseded load %d (current %d)", token, self._generation)
                return False
            self.records = list(records)
            self.state = transition(DashboardState(), DatasetLoaded(options), self.records)
            self.error = None
            self.failure = None
        return True

    def fail_load(self, token: int, exc: IngestionError) -> bool:
        with self._lock:
            if not self.is_current(token):
                logger.info("Ignoring failure of superseded load %d (current %d)", token, self._generation)
                return False
            self.records = []
            self.state = DashboardState()
            self.error = str(exc)
            self.failure = exc
        return True

    def reload(self, loader: Callable[[], Sequence[OperatorRecord]]) -> bool:
        """Run one load through ``loader``; ingestion failures are recorded, not raised."""
        token = self.begin_load()
        try:
            records = loader()
        except IngestionError as exc:
            logger.warning("Dataset load failed: %s", exc)
            self.fail_load(token, exc)
            return False
        return self.complete_load(token, records)

    def ensure_loaded(self, loader: Callable[[], Sequence[OperatorRecord]]) -> None:
        """First use triggers a load; later calls keep whatever the last load left."""
        if not self.started:
            self.reload(loader)

    def data_context(self) -> Dict[str, object]:
        """Current dataset in the shape view functions consume; a failed load raises its error."""
        if self.failure is not None:
            raise self.failure
        return {"records": self.records, "options": self.options}

    def dispatch(self, event: FilterEvent) -> DashboardState:
        self.state = transition(self.state, event, self.records)
        return self.state

    def views(self) -> Dict[str, List[OperatorRecord]]:
        return evaluate_views(self.records, self.state.filters)
