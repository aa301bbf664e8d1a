"""
Dashboard widget registry and layout.

Settings are stored on the user as JSON (``{"widgets": [...], "layoutMode": ...}``)
and always merged with the registry before use, so widgets added later show up
for existing users and removed ones disappear.
"""
from typing import Dict, Iterable, List, Optional

from dashboard.schemas.widgets import (
    LayoutMode,
    ResolvedWidget,
    RowWidget,
    WidgetDefinition,
    WidgetRow,
    WidgetSetting,
    WidgetSettings,
)

WIDGET_REGISTRY: Dict[str, WidgetDefinition] = {
    "pull-requests": WidgetDefinition(
        id="pull-requests",
        name="Pull Requests",
        description="GitHub PRs across your connected accounts",
        min_width=1, min_height=2, default_width=1, default_height=2,
    ),
    "news": WidgetDefinition(
        id="news",
        name="News",
        description="Latest updates from your RSS sources",
        min_width=1, min_height=2, default_width=1, default_height=2,
    ),
    "expenditures": WidgetDefinition(
        id="expenditures",
        name="Expenditures",
        description="Track subscriptions and consumption costs",
        requires_admin=True,
        min_width=2, min_height=1, default_width=2, default_height=1,
    ),
    "timers": WidgetDefinition(
        id="timers",
        name="Timers",
        description="Countdown timers with alerts",
        min_width=1, min_height=2, default_width=1, default_height=2,
    ),
    "mail": WidgetDefinition(
        id="mail",
        name="Mail",
        description="Email summaries from Outlook, Gmail, and IMAP accounts",
        min_width=1, min_height=2, default_width=1, default_height=2,
    ),
}


def available_widgets(is_admin: bool) -> List[WidgetDefinition]:
    return [w for w in WIDGET_REGISTRY.values() if not w.requires_admin or is_admin]


def default_widget_settings(available: List[WidgetDefinition]) -> WidgetSettings:
    return WidgetSettings(widgets=[
        WidgetSetting(id=w.id, enabled=w.default_enabled, order=index)
        for index, w in enumerate(available)
    ])


def merge_widget_settings(user_settings: Optional[WidgetSettings], available: List[WidgetDefinition]) -> WidgetSettings:
    if user_settings is None:
        return default_widget_settings(available)

    existing_ids = {w.id for w in user_settings.widgets}
    max_order = max((w.order for w in user_settings.widgets), default=-1)

    new_widgets = [
        WidgetSetting(id=w.id, enabled=w.default_enabled, order=max_order + index + 1)
        for index, w in enumerate(x for x in available if x.id not in existing_ids)
    ]
    valid_ids = {w.id for w in available}
    kept = [w for w in user_settings.widgets if w.id in valid_ids]

    return WidgetSettings(
        layout_mode=user_settings.layout_mode,
        widgets=sorted(kept + new_widgets, key=lambda w: w.order),
    )


def load_widget_settings(raw: Optional[dict], is_admin: bool) -> WidgetSettings:
    """Parses the stored JSON (ignoring entries for unknown widgets) and merges it with the registry."""
    user_settings = None
    if raw:
        entries = [w for w in raw.get("widgets", []) if isinstance(w, dict) and w.get("id") in WIDGET_REGISTRY]
        user_settings = WidgetSettings.model_validate({**raw, "widgets": entries})
    return merge_widget_settings(user_settings, available_widgets(is_admin))


def dump_widget_settings(settings: WidgetSettings) -> dict:
    return settings.model_dump(by_alias=True, exclude_none=True)


def enabled_widgets(settings: WidgetSettings) -> List[WidgetSetting]:
    return sorted((w for w in settings.widgets if w.enabled), key=lambda w: w.order)


def toggle_widget(settings: WidgetSettings, widget_id: str, enabled: bool) -> WidgetSettings:
    return settings.model_copy(update={
        "widgets": [w.model_copy(update={"enabled": enabled}) if w.id == widget_id else w for w in settings.widgets],
    })


def reorder_widgets(settings: WidgetSettings, new_order: Iterable[str]) -> WidgetSettings:
    """Widgets missing from ``new_order`` keep their current order value."""
    positions = {widget_id: index for index, widget_id in enumerate(new_order)}
    return settings.model_copy(update={
        "widgets": [w.model_copy(update={"order": positions.get(w.id, w.order)}) for w in settings.widgets],
    })


def resolve_widget_size(setting: WidgetSetting, definition: Optional[WidgetDefinition]) -> ResolvedWidget:
    min_width = definition.min_width if definition else 1
    min_height = definition.min_height if definition else 1
    width = max(setting.width or (definition.default_width if definition else min_width), min_width)
    height = max(setting.height or (definition.default_height if definition else min_height), min_height)

    return ResolvedWidget(
        id=setting.id,
        enabled=setting.enabled,
        order=setting.order,
        width=width,
        height=height,
        min_width=min_width,
        min_height=min_height,
        colspan=min(width, 2),
        rowspan=min(height, 3),
    )


def update_widget_size(settings: WidgetSettings, widget_id: str, width: int, height: int) -> WidgetSettings:
    return settings.model_copy(update={
        "widgets": [
            w.model_copy(update={"width": width, "height": height}) if w.id == widget_id else w
            for w in settings.widgets
        ],
    })


def update_layout_mode(settings: WidgetSettings, layout_mode: LayoutMode) -> WidgetSettings:
    return settings.model_copy(update={"layout_mode": layout_mode})


def _create_row(widgets: List[ResolvedWidget], grid_columns: int, height: int) -> WidgetRow:
    """Spreads spare columns evenly; the last widget takes the remainder."""
    requested = sum(min(w.width, grid_columns) for w in widgets)
    extra = grid_columns - requested
    per_widget = extra // len(widgets)

    row_widgets = []
    for index, widget in enumerate(widgets):
        remainder = extra - per_widget * len(widgets) if index == len(widgets) - 1 else 0
        calculated = min(widget.width, grid_columns) + per_widget + remainder
        row_widgets.append(RowWidget(**widget.model_dump(), calculated_width=max(calculated, widget.min_width)))
    return WidgetRow(height=height, widgets=row_widgets)


def _pack(widgets: List[ResolvedWidget], grid_columns: int) -> List[List[ResolvedWidget]]:
    rows: List[List[ResolvedWidget]] = []
    current: List[ResolvedWidget] = []
    current_width = 0
    for widget in widgets:
        width = min(widget.width, grid_columns)
        if current and current_width + width > grid_columns:
            rows.append(current)
            current, current_width = [], 0
        current.append(widget)
        current_width += width
    if current:
        rows.append(current)
    return rows


def organize_widgets_into_rows(widgets: List[ResolvedWidget], grid_columns: int, layout_mode: LayoutMode = "auto") -> List[WidgetRow]:
    """
    Auto mode groups widgets by height (tallest first) so every row is uniform.
    Manual mode keeps the given order; a row is as tall as its tallest widget.
    """
    if not widgets:
        return []

    if layout_mode == "auto":
        by_height: Dict[int, List[ResolvedWidget]] = {}
        for widget in widgets:
            by_height.setdefault(widget.height, []).append(widget)
        return [
            _create_row(row, grid_columns, height)
            for height in sorted(by_height, reverse=True)
            for row in _pack(by_height[height], grid_columns)
        ]

    return [
        _create_row(row, grid_columns, max(w.height for w in row))
        for row in _pack(widgets, grid_columns)
    ]
