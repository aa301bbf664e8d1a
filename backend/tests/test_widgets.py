import pytest

from dashboard.schemas.widgets import WidgetSetting
from dashboard.services.widgets import (
    WIDGET_REGISTRY,
    dump_widget_settings,
    load_widget_settings,
    organize_widgets_into_rows,
    reorder_widgets,
    resolve_widget_size,
    toggle_widget,
)

from conftest import auth_headers


def resolved(widget_id: str, order: int = 0, **size):
    return resolve_widget_size(WidgetSetting(id=widget_id, enabled=True, order=order, **size), WIDGET_REGISTRY[widget_id])


def test_defaults_hide_admin_widgets():
    settings = load_widget_settings(None, is_admin=False)
    assert [w.id for w in settings.widgets] == ["pull-requests", "news", "timers", "mail"]
    assert [w.order for w in settings.widgets] == [0, 1, 2, 3]

    admin_settings = load_widget_settings(None, is_admin=True)
    assert "expenditures" in [w.id for w in admin_settings.widgets]


def test_stored_settings_merge_with_registry():
    raw = {
        "layoutMode": "auto",
        "widgets": [
            {"id": "news", "enabled": False, "order": 0},
            {"id": "expenditures", "enabled": True, "order": 1},
            {"id": "weather", "enabled": True, "order": 2},
        ],
    }
    settings = load_widget_settings(raw, is_admin=False)

    assert settings.layout_mode == "auto"
    assert [(w.id, w.enabled, w.order) for w in settings.widgets] == [
        ("news", False, 0),
        ("pull-requests", True, 2),
        ("timers", True, 3),
        ("mail", True, 4),
    ]
    assert dump_widget_settings(settings)["layoutMode"] == "auto"


def test_toggle_and_reorder():
    settings = load_widget_settings(None, is_admin=False)
    settings = toggle_widget(settings, "mail", False)
    settings = reorder_widgets(settings, ["mail", "news"])

    by_id = {w.id: w for w in settings.widgets}
    assert by_id["mail"].enabled is False
    assert by_id["mail"].order == 0
    assert by_id["news"].order == 1
    assert by_id["timers"].order == 2


def test_resolve_widget_size_respects_minimums():
    widget = resolved("expenditures", width=1, height=6)
    assert (widget.width, widget.height) == (2, 6)
    assert (widget.colspan, widget.rowspan) == (2, 3)

    default = resolved("news")
    assert (default.width, default.height) == (1, 2)


def test_auto_layout_groups_by_height():
    widgets = [resolved("pull-requests", 0), resolved("expenditures", 1), resolved("news", 2), resolved("timers", 3)]
    rows = organize_widgets_into_rows(widgets, grid_columns=2, layout_mode="auto")

    assert [r.height for r in rows] == [2, 2, 1]
    assert [[w.id for w in r.widgets] for r in rows] == [["pull-requests", "news"], ["timers"], ["expenditures"]]
    assert [w.calculated_width for w in rows[0].widgets] == [1, 1]
    assert rows[1].widgets[0].calculated_width == 2


def test_manual_layout_keeps_order():
    widgets = [resolved("pull-requests", 0), resolved("expenditures", 1), resolved("news", 2)]
    rows = organize_widgets_into_rows(widgets, grid_columns=2, layout_mode="manual")

    assert [[w.id for w in r.widgets] for r in rows] == [["pull-requests"], ["expenditures"], ["news"]]
    assert [r.height for r in rows] == [2, 1, 2]


def test_extra_columns_go_to_last_widget():
    widgets = [resolved("pull-requests", 0), resolved("news", 1)]
    [row] = organize_widgets_into_rows(widgets, grid_columns=5, layout_mode="manual")
    assert [w.calculated_width for w in row.widgets] == [2, 3]


def test_empty_layout():
    assert organize_widgets_into_rows([], grid_columns=3) == []


@pytest.mark.asyncio
async def test_widget_routes_persist_settings(client, user):
    headers = auth_headers(user)

    toggled = await client.post("/dashboard/widgets/toggle", headers=headers, json={"widget_id": "news", "enabled": False})
    assert toggled.status_code == 200
    news = next(w for w in toggled.json()["settings"]["widgets"] if w["id"] == "news")
    assert news["enabled"] is False

    await client.put("/dashboard/widgets/layout-mode", headers=headers, json={"layout_mode": "auto"})
    current = await client.get("/dashboard/widgets", headers=headers)
    assert current.json()["settings"]["layoutMode"] == "auto"
    assert current.json()["is_admin"] is False

    layout = await client.get("/dashboard/widgets/layout?columns=2", headers=headers)
    ids = [w["id"] for row in layout.json() for w in row["widgets"]]
    assert "news" not in ids
    assert "expenditures" not in ids


@pytest.mark.asyncio
async def test_resize_clamps_to_widget_minimum(client, admin):
    response = await client.post(
        "/dashboard/widgets/resize",
        headers=auth_headers(admin),
        json={"widget_id": "expenditures", "width": 1, "height": 1},
    )
    widget = next(w for w in response.json()["settings"]["widgets"] if w["id"] == "expenditures")
    assert (widget["width"], widget["height"]) == (2, 1)


@pytest.mark.asyncio
async def test_toggle_unavailable_widget_returns_404(client, user):
    response = await client.post(
        "/dashboard/widgets/toggle",
        headers=auth_headers(user),
        json={"widget_id": "expenditures", "enabled": True},
    )
    assert response.status_code == 404
