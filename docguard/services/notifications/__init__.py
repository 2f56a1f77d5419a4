from docguard.services.notifications.audience import resolve_audience, select_workspace_audience

__all__ = [
    "resolve_audience",
    "select_workspace_audience",
]
