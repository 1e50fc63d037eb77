"""Heuristic cluster theming with optional AI refinement."""
from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import tiktoken
from pydantic import BaseModel, Field

from .config import EngineConfig, get_config
from .errors import AIRefinementFailure
from .models import CATEGORIES, ClusterTheme, FileCluster, FileEmbeddingRecord

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """Capability used for optional AI refinement."""

    def generate_text(self, prompt: str) -> str:
        ...


CATEGORY_PATTERNS: Dict[str, List[str]] = {
    "work": ["meeting", "report", "presentation", "budget", "project", "proposal", "work", "business", "company"],
    "personal": ["photo", "vacation", "family", "personal", "diary", "journal", "home", "life"],
    "media": ["image", "video", "audio", "photo", ".jpg", ".png", ".mp4", "media", "picture"],
    "documents": ["document", "pdf", "doc", "text", "notes", "manual", "paper", "report"],
    "archive": ["old", "backup", "archive", "2020", "2021", "2022", "previous"],
}

TOKEN_STOPWORDS = {"file", "files", "document", "untitled", "copy", "final", "draft", "new"}
NAMING_STOPWORDS = {"file", "doc", "pdf", "txt"}

CONTENT_PREFIX_CHARS = 200
MAX_COMMON_WORDS = 3

_NON_WORD_RE = re.compile(r"[^\w\s]")
_FOLDER_STRIP_RE = re.compile(r"[^A-Za-z0-9 _-]")
_SPACES_RE = re.compile(r"\s+")

DEFAULT_FOLDER_NAME = "Organized Files"


def capitalize_words(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split(" "))


def sanitize_folder_name(name: str, max_length: int = 25) -> str:
    """Strip ``name`` to ``[A-Za-z0-9 _-]`` and bound its length."""
    cleaned = _FOLDER_STRIP_RE.sub("", name or "")
    cleaned = _SPACES_RE.sub(" ", cleaned).strip()
    return cleaned[:max_length].rstrip()


def extract_common_words(file_names: Sequence[str]) -> List[str]:
    """Return up to three filename tokens shared by a meaningful share of files.

    A token counts when it is longer than three characters, is not a
    stopword, and appears at least ``max(2, 0.3 * len(file_names))`` times.
    """

    counts: Counter[str] = Counter()
    for name in file_names:
        words = _NON_WORD_RE.sub(" ", name.lower()).split()
        counts.update(w for w in words if len(w) > 3 and w not in TOKEN_STOPWORDS)

    minimum = max(2, len(file_names) * 0.3)
    frequent = [(w, c) for w, c in counts.items() if c >= minimum]
    # stable sort keeps first-seen order among equal counts
    frequent.sort(key=lambda item: item[1], reverse=True)
    return [w for w, _ in frequent[:MAX_COMMON_WORDS]]


def score_categories(files: Sequence[FileEmbeddingRecord]) -> Dict[str, int]:
    """Score each category by keyword hits in file names and content."""

    scores = {category: 0 for category in CATEGORIES}
    file_names = [f.file_name.lower() for f in files]
    all_text = " ".join(f.content_snippet[:CONTENT_PREFIX_CHARS] for f in files).lower()

    for f in files:
        mime = str(f.metadata.get("mimeType", "") or "").lower()
        if any(kind in mime for kind in ("image", "video", "audio")):
            scores["media"] += 2
        elif any(kind in mime for kind in ("document", "pdf", "text")):
            scores["documents"] += 2

    for category, keywords in CATEGORY_PATTERNS.items():
        for keyword in keywords:
            if keyword in all_text:
                scores[category] += 1
            if any(keyword in name for name in file_names):
                scores[category] += 2
    return scores


def pick_category(scores: Dict[str, int]) -> str:
    """Return the top-scoring category; ``mixed`` on zero score or a tie."""
    best = max(scores.values(), default=0)
    if best <= 0:
        return "mixed"
    leaders = [c for c, s in scores.items() if s == best]
    return leaders[0] if len(leaders) == 1 else "mixed"


class ThemeRefinement(BaseModel):
    """Fields parsed from a ``KEY: value`` refinement response."""

    name: Optional[str] = None
    folder_name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.name or self.folder_name or self.category or self.description or self.keywords
        )


def parse_refinement(response: str, folder_name_max_length: int = 25) -> ThemeRefinement:
    """Parse ``KEY: value`` lines; unknown keys and invalid categories are ignored."""

    result = ThemeRefinement()
    for line in (response or "").splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = key.strip().strip("*#- ").upper()
        value = value.strip().strip("[]").strip()
        if not value:
            continue
        if key == "NAME":
            result.name = value
        elif key == "FOLDER":
            result.folder_name = sanitize_folder_name(value, folder_name_max_length) or None
        elif key == "CATEGORY":
            if value.lower() in CATEGORIES:
                result.category = value.lower()
        elif key == "KEYWORDS":
            result.keywords = [k.strip().lower() for k in value.split(",") if k.strip()]
        elif key == "DESCRIPTION":
            result.description = value
    return result


def _encoding(name: str):
    return tiktoken.get_encoding(name)


def limit_file_names(names: Sequence[str], token_limit: int, encoding_name: str) -> str:
    """Join ``names`` for a prompt, dropping trailing names past ``token_limit``."""

    encoding = _encoding(encoding_name)
    kept: List[str] = []
    used = 0
    for name in names:
        cost = len(encoding.encode(name + ", "))
        if kept and used + cost > token_limit:
            break
        kept.append(name)
        used += cost
    text = ", ".join(kept)
    if len(kept) < len(names):
        text += f" (and {len(names) - len(kept)} more)"
    return text


class ThemeAnalyzer:
    """Infer a name, category, keywords and folder name for a group of files."""

    def __init__(
        self,
        refiner: Optional[TextGenerator] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.refiner = refiner
        self.config = config or get_config()

    def analyze(self, files: Sequence[FileEmbeddingRecord]) -> ClusterTheme:
        category = pick_category(score_categories(files))
        common = extract_common_words([f.file_name for f in files])
        keywords = [w for w in common if len(w) > 3 and w not in NAMING_STOPWORDS]

        if keywords:
            primary = capitalize_words(keywords[0])
            name = f"{primary} Collection"
            folder = primary
        else:
            name = f"{capitalize_words(category)} Files"
            folder = capitalize_words(category)

        folder = sanitize_folder_name(folder, self.config.folder_name_max_length)
        return ClusterTheme(
            name=name,
            description=f"Collection of {category} files",
            folder_name=folder or DEFAULT_FOLDER_NAME,
            category=category,
            keywords=keywords,
        )

    def build_prompt(self, cluster: FileCluster) -> str:
        file_names = limit_file_names(
            [f.file_name for f in cluster.files],
            self.config.prompt_token_limit,
            self.config.encoding_name,
        )
        return (
            "Analyze this group of files and suggest better organization:\n\n"
            f"Files: {file_names}\n"
            f"Current name: {cluster.name}\n"
            f"Current folder: {cluster.suggested_folder_name}\n\n"
            "Please suggest:\n"
            f"1. A better cluster name (max {self.config.cluster_name_max_length} chars)\n"
            f"2. A better folder name (max {self.config.folder_name_max_length} chars, no special chars)\n"
            "3. Category (work/personal/media/documents/archive/mixed)\n"
            "4. 3-5 relevant keywords\n"
            "5. Brief description\n\n"
            "Format your response as:\n"
            "NAME: [improved name]\n"
            "FOLDER: [better folder name]\n"
            "CATEGORY: [category]\n"
            "KEYWORDS: [keyword1, keyword2, keyword3]\n"
            "DESCRIPTION: [brief description]"
        )

    def _request_refinement(self, cluster: FileCluster) -> ThemeRefinement:
        try:
            response = self.refiner.generate_text(self.build_prompt(cluster))
        except Exception as err:  # pylint: disable=broad-except
            raise AIRefinementFailure(f"refinement call failed: {err}") from err
        if not isinstance(response, str):
            raise AIRefinementFailure(f"refinement returned {type(response).__name__}")
        parsed = parse_refinement(response, self.config.folder_name_max_length)
        if parsed.is_empty():
            raise AIRefinementFailure("refinement response had no recognised fields")
        return parsed

    def refine(self, cluster: FileCluster) -> FileCluster:
        """Return ``cluster`` with AI suggestions applied where available.

        Refinement is best effort: without a refiner, or on any failure, the
        heuristic cluster is returned unchanged.
        """

        if self.refiner is None:
            return cluster
        try:
            refinement = self._request_refinement(cluster)
        except AIRefinementFailure as err:
            logger.warning("AI refinement failed for cluster %s: %s", cluster.id, err)
            return cluster

        update: Dict[str, object] = {}
        if refinement.name:
            update["name"] = refinement.name[: self.config.cluster_name_max_length].strip()
        if refinement.folder_name:
            update["suggested_folder_name"] = refinement.folder_name
        if refinement.category:
            update["category"] = refinement.category
        if refinement.description:
            update["description"] = refinement.description
        if refinement.keywords:
            update["files"] = [
                f.model_copy(update={"keywords": _merge_keywords(f.keywords, refinement.keywords)})
                for f in cluster.files
            ]
        logger.info("Refined cluster %s: %s", cluster.id, sorted(update))
        return cluster.model_copy(update=update)

    def refine_all(self, clusters: Iterable[FileCluster]) -> List[FileCluster]:
        return [self.refine(c) for c in clusters]


def _merge_keywords(existing: Sequence[str], extra: Sequence[str]) -> List[str]:
    merged = list(existing)
    for keyword in extra:
        if keyword not in merged:
            merged.append(keyword)
    return merged


__all__ = [
    "TextGenerator",
    "ThemeAnalyzer",
    "ThemeRefinement",
    "capitalize_words",
    "extract_common_words",
    "limit_file_names",
    "parse_refinement",
    "pick_category",
    "sanitize_folder_name",
    "score_categories",
]
