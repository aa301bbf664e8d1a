from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard.models.theme import UserTheme
from dashboard.utils.logger import get_logger

logger = get_logger("themes")

DEFAULT_VARIABLE_VALUE = "oklch(0.5 0 0)"
CUSTOM_THEME_PREFIX = "custom:"

THEME_VARIABLE_GROUPS: Dict[str, List[str]] = {
    "core": [
        "background", "foreground",
        "primary", "primary-foreground",
        "secondary", "secondary-foreground",
        "accent", "accent-foreground",
        "muted", "muted-foreground",
        "destructive", "border", "input", "ring",
    ],
    "components": ["card", "card-foreground", "popover", "popover-foreground"],
    "sidebar": [
        "sidebar", "sidebar-foreground",
        "sidebar-primary", "sidebar-primary-foreground",
        "sidebar-accent", "sidebar-accent-foreground",
        "sidebar-border", "sidebar-ring",
    ],
    "charts": ["chart-1", "chart-2", "chart-3", "chart-4", "chart-5"],
}

THEME_VARIABLE_NAMES: List[str] = [name for group in THEME_VARIABLE_GROUPS.values() for name in group]

THEME_VARIABLE_LABELS: Dict[str, str] = {
    name: " ".join(part.capitalize() for part in name.split("-")) for name in THEME_VARIABLE_NAMES
}

DUPLICATE_NAME_MESSAGE = "A theme with this name already exists"


def parse_theme_variables(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Every known variable, with non-string or missing values replaced by the neutral grey."""
    data = data or {}
    return {
        name: data[name] if isinstance(data.get(name), str) else DEFAULT_VARIABLE_VALUE
        for name in THEME_VARIABLE_NAMES
    }


def default_theme_variables() -> Dict[str, str]:
    return parse_theme_variables({})


def custom_theme_ref(theme_id: int) -> str:
    return f"{CUSTOM_THEME_PREFIX}{theme_id}"


def parse_custom_theme_ref(value: Optional[str]) -> Optional[int]:
    if not value or not value.startswith(CUSTOM_THEME_PREFIX):
        return None
    try:
        return int(value[len(CUSTOM_THEME_PREFIX):])
    except ValueError:
        return None


class ThemeService:
    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def get_themes(self) -> List[UserTheme]:
        result = await self.db.execute(
            select(UserTheme)
            .where(UserTheme.user_id == self.user_id)
            .order_by(UserTheme.created_at.desc(), UserTheme.id.desc())
        )
        return list(result.scalars().all())

    async def get_theme(self, theme_id: int) -> Optional[UserTheme]:
        result = await self.db.execute(
            select(UserTheme).where(UserTheme.id == theme_id, UserTheme.user_id == self.user_id)
        )
        return result.scalar_one_or_none()

    async def get_active_theme(self) -> Optional[UserTheme]:
        result = await self.db.execute(
            select(UserTheme).where(UserTheme.user_id == self.user_id, UserTheme.is_active.is_(True))
        )
        return result.scalars().first()

    async def _name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        query = select(UserTheme.id).where(UserTheme.user_id == self.user_id, UserTheme.name == name)
        if exclude_id is not None:
            query = query.where(UserTheme.id != exclude_id)
        return (await self.db.execute(query)).first() is not None

    async def create_theme(self, name: str, light_variables: Dict[str, Any], dark_variables: Dict[str, Any]) -> UserTheme:
        if await self._name_taken(name):
            raise ValueError(DUPLICATE_NAME_MESSAGE)

        theme = UserTheme(
            user_id=self.user_id,
            name=name,
            light_variables=parse_theme_variables(light_variables),
            dark_variables=parse_theme_variables(dark_variables),
            is_active=False,
        )
        self.db.add(theme)
        await self.db.commit()
        await self.db.refresh(theme)
        logger.info(f"Created theme '{name}' for user {self.user_id}")
        return theme

    async def update_theme(
        self,
        theme_id: int,
        name: Optional[str] = None,
        light_variables: Optional[Dict[str, Any]] = None,
        dark_variables: Optional[Dict[str, Any]] = None,
    ) -> UserTheme:
        theme = await self.get_theme(theme_id)
        if not theme:
            raise LookupError("Theme not found")
        if name and await self._name_taken(name, exclude_id=theme_id):
            raise ValueError(DUPLICATE_NAME_MESSAGE)

        if name is not None:
            theme.name = name
        if light_variables is not None:
            theme.light_variables = parse_theme_variables(light_variables)
        if dark_variables is not None:
            theme.dark_variables = parse_theme_variables(dark_variables)

        await self.db.commit()
        await self.db.refresh(theme)
        return theme

    async def delete_theme(self, theme_id: int) -> None:
        theme = await self.get_theme(theme_id)
        if not theme:
            raise LookupError("Theme not found")
        await self.db.delete(theme)
        await self.db.commit()

    async def set_active_theme(self, theme_id: Optional[int]) -> Optional[UserTheme]:
        """Deactivates every theme, then activates ``theme_id`` when given."""
        await self.db.execute(
            update(UserTheme).where(UserTheme.user_id == self.user_id).values(is_active=False)
        )
        if theme_id is None:
            await self.db.commit()
            return None

        theme = await self.get_theme(theme_id)
        if not theme:
            await self.db.rollback()
            raise LookupError("Theme not found")

        theme.is_active = True
        await self.db.commit()
        await self.db.refresh(theme)
        return theme
