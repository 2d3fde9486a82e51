import os
from functools import lru_cache

USER_NAME_PLACEHOLDER = "{{user_name_sentence}}"


@lru_cache(maxsize=1)
def _load_template() -> str:
    # Get the directory of this file and construct the path to prompts.md
    current_dir = os.path.dirname(os.path.abspath(__file__))
    prompts_path = os.path.join(current_dir, "..", "prompts", "prompts.md")
    with open(prompts_path, encoding="utf-8") as f:
        return f.read()


def render_prompt(user_name: str | None = None) -> str:
    """Render the system prompt. The user's display name is its only parameter."""
    sentence = f" El usuario que te está haciendo la petición se llama {user_name}." if user_name else ""
    return _load_template().replace(USER_NAME_PLACEHOLDER, sentence)
