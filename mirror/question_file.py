"""Question files: markdown body with optional YAML frontmatter overrides."""

from pathlib import Path

import frontmatter

# Frontmatter keys that may override run settings.
ALLOWED_KEYS = ("intensity", "persona", "judge", "classify", "mirror")


def parse_file(file_path: Path) -> tuple[str, dict]:
    """Parse a markdown question with optional YAML frontmatter.

    Returns:
        (question, overrides) where overrides only holds the keys in
        ALLOWED_KEYS. If there is no frontmatter, overrides is {}.

    Raises:
        ValueError: If the body is empty.
    """
    post = frontmatter.load(str(file_path))
    question = post.content.strip()
    if not question:
        raise ValueError(f"No question text in {file_path}")
    overrides = {k: v for k, v in post.metadata.items() if k in ALLOWED_KEYS}
    return question, overrides
