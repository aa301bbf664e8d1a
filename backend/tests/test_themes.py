import pytest
from sqlalchemy import select

from dashboard.models.theme import UserTheme
from dashboard.models.user import User
from dashboard.services.themes.color import (
    OklchComponents,
    format_oklch,
    hex_to_oklch,
    is_valid_hex,
    is_valid_oklch,
    oklch_to_hex,
    parse_oklch,
)
from dashboard.services.themes.theme_service import (
    THEME_VARIABLE_NAMES,
    ThemeService,
    parse_custom_theme_ref,
    parse_theme_variables,
)

from conftest import auth_headers


def test_parse_oklch_units():
    parsed = parse_oklch("oklch(62% 50% 120deg / 50%)")
    assert parsed.l == pytest.approx(0.62)
    assert parsed.c == pytest.approx(0.2)
    assert parsed.h == pytest.approx(120)
    assert parsed.alpha == pytest.approx(0.5)

    assert parse_oklch("oklch(0.5 none 10)").c == 0
    assert parse_oklch("oklch(0.5 0.1)") is None
    assert parse_oklch("rgb(1 2 3)") is None


def test_format_oklch_trims_zeros():
    assert format_oklch(OklchComponents(l=0.5, c=0.1, h=200.0)) == "oklch(0.5 0.1 200)"
    assert format_oklch(OklchComponents(l=0.5, c=0.1, h=200.0, alpha=0.5)) == "oklch(0.5 0.1 200 / 50%)"
    assert format_oklch(OklchComponents(l=0.5, c=0.1, h=200.0, alpha=1.0)) == "oklch(0.5 0.1 200)"


def test_color_validation():
    assert is_valid_hex("#fff")
    assert is_valid_hex("3b82f6")
    assert is_valid_hex("#3b82f680")
    assert not is_valid_hex("#12345")
    assert is_valid_oklch("oklch(0.7 0.1 30)")
    assert not is_valid_oklch("oklch(bright 0.1 30)")


def test_hex_to_oklch():
    assert hex_to_oklch("#ffffff") == "oklch(1 0 0)"
    assert hex_to_oklch("000") == "oklch(0 0 0)"
    assert hex_to_oklch("#zzzzzz") is None

    blue = parse_oklch(hex_to_oklch("#3b82f6"))
    assert blue.l == pytest.approx(0.623, abs=0.002)
    assert blue.h == pytest.approx(259.8, abs=0.5)


def test_oklch_to_hex():
    assert oklch_to_hex("oklch(0.5 0 0)") == "#636363"
    assert oklch_to_hex("oklch(1 0 0)") == "#ffffff"
    assert oklch_to_hex("#ABCDEF") == "#abcdef"
    # far outside sRGB, clamped per channel
    assert oklch_to_hex("oklch(0.9 0.4 30)").startswith("#ff")
    assert oklch_to_hex("not a colour") is None


def test_parse_theme_variables_fills_gaps():
    variables = parse_theme_variables({"primary": "oklch(0.6 0.2 250)", "border": 3, "unknown": "x"})
    assert set(variables) == set(THEME_VARIABLE_NAMES)
    assert len(variables) == 31
    assert variables["primary"] == "oklch(0.6 0.2 250)"
    assert variables["border"] == "oklch(0.5 0 0)"


def test_parse_custom_theme_ref():
    assert parse_custom_theme_ref("custom:12") == 12
    assert parse_custom_theme_ref("custom:abc") is None
    assert parse_custom_theme_ref("dark") is None


@pytest.mark.asyncio
async def test_theme_names_are_unique_per_user(db, user, admin):
    service = ThemeService(db, user.id)
    first = await service.create_theme("Ocean", {}, {})

    with pytest.raises(ValueError, match="already exists"):
        await service.create_theme("Ocean", {}, {})

    # another user may reuse the name
    await ThemeService(db, admin.id).create_theme("Ocean", {}, {})

    second = await service.create_theme("Forest", {}, {})
    with pytest.raises(ValueError):
        await service.update_theme(second.id, name="Ocean")

    renamed = await service.update_theme(first.id, name="Deep Ocean")
    assert renamed.name == "Deep Ocean"


@pytest.mark.asyncio
async def test_only_one_active_theme(db, user):
    service = ThemeService(db, user.id)
    first = await service.create_theme("One", {}, {})
    second = await service.create_theme("Two", {}, {})

    await service.set_active_theme(first.id)
    await service.set_active_theme(second.id)

    active = (await db.execute(select(UserTheme.name).where(UserTheme.is_active.is_(True)))).scalars().all()
    assert active == ["Two"]

    assert await service.set_active_theme(None) is None
    assert await service.get_active_theme() is None

    with pytest.raises(LookupError):
        await service.set_active_theme(9999)


@pytest.mark.asyncio
async def test_theme_routes_update_profile_reference(client, db, user):
    headers = auth_headers(user)
    created = await client.post("/api/themes", headers=headers, json={"name": " Sunset ", "light_variables": {}})
    assert created.status_code == 200
    theme = created.json()
    assert theme["name"] == "Sunset"

    activated = await client.put("/api/themes/active", headers=headers, json={"theme_id": theme["id"]})
    assert activated.json()["is_active"] is True
    await db.refresh(user)
    assert user.theme == f"custom:{theme['id']}"

    deleted = await client.delete(f"/api/themes/{theme['id']}", headers=headers)
    assert deleted.json() == {"success": True}
    refreshed = (await db.execute(select(User.theme).where(User.id == user.id))).scalar_one()
    assert refreshed == "default"

    missing = await client.get(f"/api/themes/{theme['id']}", headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_convert_route(client):
    response = await client.post("/api/themes/convert", json={"value": "ffffff"})
    assert response.json() == {"hex": "#ffffff", "oklch": "oklch(1 0 0)"}

    bad = await client.post("/api/themes/convert", json={"value": "blue"})
    assert bad.status_code == 400
