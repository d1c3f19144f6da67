"""Build recipe resolution.

A repository that ships a ``Dockerfile`` is built with it. Otherwise the
project type is detected from marker files, checked in a fixed order, and a
stock Dockerfile for that type is written into the source tree.
"""

from dataclasses import dataclass
from pathlib import Path

from .logging_config import get_logger

logger = get_logger(__name__)

RECIPE_FILE = "Dockerfile"

NODE_DOCKERFILE = """\
FROM node:18-alpine
WORKDIR /app
COPY package*.json ./
RUN npm install
COPY . .
RUN npm run build
EXPOSE 3000
CMD ["npm", "start"]
"""

PYTHON_DOCKERFILE = """\
FROM python:3.11-slim
WORKDIR /app
COPY requirements.txt .
RUN pip install -r requirements.txt
COPY . .
EXPOSE 8000
CMD ["python", "app.py"]
"""

GO_DOCKERFILE = """\
FROM golang:1.21-alpine AS builder
WORKDIR /app
COPY go.mod go.sum ./
RUN go mod download
COPY . .
RUN go build -o app .

FROM alpine:latest
RUN apk --no-cache add ca-certificates
WORKDIR /root/
COPY --from=builder /app/app .
EXPOSE 8080
CMD ["./app"]
"""

# Marker file -> (project type, generated recipe), in priority order
PROJECT_MARKERS: tuple[tuple[str, str, str], ...] = (
    ("package.json", "node", NODE_DOCKERFILE),
    ("requirements.txt", "python", PYTHON_DOCKERFILE),
    ("go.mod", "go", GO_DOCKERFILE),
)


class RecipeNotFoundError(Exception):
    """Raised when neither a Dockerfile nor a known project marker is present."""

    def __init__(self, source_dir: Path):
        self.source_dir = source_dir
        super().__init__("could not detect project type")


@dataclass(frozen=True)
class Recipe:
    """Resolved build recipe."""

    project_type: str
    recipe_file: str
    generated: bool


def detect_project_type(source_dir: Path) -> tuple[str, str] | None:
    """First matching ``(project_type, dockerfile)`` for the tree, if any."""
    for marker, project_type, dockerfile in PROJECT_MARKERS:
        if (source_dir / marker).is_file():
            return project_type, dockerfile
    return None


def resolve_recipe(source_dir: Path) -> Recipe:
    """Pick the recipe for ``source_dir``, writing a generated one if needed.

    Raises:
        RecipeNotFoundError: nothing in the tree identifies how to build it.
    """
    if (source_dir / RECIPE_FILE).is_file():
        logger.info("recipe_resolved", project_type="dockerfile", generated=False)
        return Recipe(project_type="dockerfile", recipe_file=RECIPE_FILE, generated=False)

    detected = detect_project_type(source_dir)
    if detected is None:
        raise RecipeNotFoundError(source_dir)

    project_type, dockerfile = detected
    (source_dir / RECIPE_FILE).write_text(dockerfile)
    logger.info("recipe_resolved", project_type=project_type, generated=True)
    return Recipe(project_type=project_type, recipe_file=RECIPE_FILE, generated=True)
