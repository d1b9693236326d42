import os
from datetime import datetime

from isuite.core.config import settings
from isuite.schemas.auth import User


def load_system_prompt(user: User) -> str:
    """Render the system prompt for the given user."""
    with open(os.path.join(os.path.dirname(__file__), "system.md"), "r", encoding="utf-8") as f:
        return f.read().format(
            agent_name=settings.PROJECT_NAME,
            user_name=user.name,
            user_email=user.email,
            current_date_and_time=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )
