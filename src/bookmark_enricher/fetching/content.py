"""Extract a short readable snippet from raw HTML."""

import re

from bs4 import BeautifulSoup, Comment

MIN_PARAGRAPH_LENGTH = 20
MAX_PARAGRAPHS = 3
MAX_SNIPPET_LENGTH = 300


class ContentExtractor:
    """Pull the first few non-boilerplate paragraphs out of a page."""

    REMOVE_TAGS = {"script", "style", "nav", "header", "footer", "aside", "form", "noscript"}
    BOILERPLATE = ("cookie", "copyright", "©", "all rights reserved")

    def extract(self, content: str, max_length: int = MAX_SNIPPET_LENGTH) -> str | None:
        """Return up to three paragraphs joined and truncated, or None."""
        soup = BeautifulSoup(content, "html.parser")

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        # Document order: an outer region goes first and takes its nested ones with it
        for element in soup.find_all(list(self.REMOVE_TAGS)):
            if not element.decomposed:
                element.decompose()

        paragraphs = []
        for p in soup.find_all("p"):
            text = re.sub(r"\s+", " ", p.get_text(separator=" ", strip=True)).strip()
            if len(text) < MIN_PARAGRAPH_LENGTH or self._is_boilerplate(text):
                continue
            paragraphs.append(text)
            if len(paragraphs) >= MAX_PARAGRAPHS:
                break

        if not paragraphs:
            return None
        return " ".join(paragraphs)[:max_length]

    def _is_boilerplate(self, text: str) -> bool:
        lowered = text.lower()
        return any(marker in lowered for marker in self.BOILERPLATE)
