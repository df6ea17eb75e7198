from .auth import AuthService, route_for
from .base import MODES, PollingView, PollTask
from .derivatives import DerivativesDashboard
from .guide import STRATEGIES, GuideView
from .history import HistoryFilters, HistoryView, history_row
from .settings import SettingsView
from .spot import SpotDashboard

__all__ = [
    "AuthService",
    "DerivativesDashboard",
    "GuideView",
    "HistoryFilters",
    "HistoryView",
    "MODES",
    "PollTask",
    "PollingView",
    "STRATEGIES",
    "SettingsView",
    "SpotDashboard",
    "history_row",
    "route_for",
]
