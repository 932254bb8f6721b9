"""Parse platform facts (creator, content type, identifiers) out of a URL's structure."""

import logging
import re
from urllib.parse import ParseResult, parse_qs, urlparse

from ..storage.models import Platform, PlatformData

logger = logging.getLogger(__name__)


class UrlPlatformParser:
    """Pure URL-structure parser. No network access."""

    GITHUB_SPECIAL_PAGES = {
        "explore", "trending", "topics", "collections", "sponsors",
        "marketplace", "settings", "notifications",
    }
    TWITTER_SPECIAL_PAGES = {"home", "explore", "search", "notifications", "messages", "settings", "i"}
    TWITTER_PROFILE_SECTIONS = {"followers", "following", "likes", "lists", "moments"}
    NUMERIC = re.compile(r"^\d+$")
    FILE_EXTENSION = re.compile(r"\.([a-zA-Z0-9]+)$")

    def parse(self, url: str) -> PlatformData | None:
        """Return platform data for a URL, or None if it cannot be parsed."""
        if not url:
            return None
        try:
            parsed = urlparse(url)
        except ValueError as e:
            logger.warning(f"Error parsing URL {url}: {e}")
            return None
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return None

        host = parsed.hostname.lower()
        parts = [p for p in parsed.path.split("/") if p]

        if host in ("youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com", "youtu.be"):
            return self._parse_youtube(parsed, host, parts)
        if host in ("github.com", "www.github.com", "gist.github.com"):
            return self._parse_github(parsed, host, parts)
        if host == "medium.com" or host.endswith(".medium.com"):
            return self._parse_medium(host, parts)
        if host in ("dev.to", "www.dev.to"):
            return self._parse_devto(parts)
        if host.endswith(".substack.com"):
            return self._parse_substack(host, parts)
        if host in ("twitter.com", "www.twitter.com", "x.com", "www.x.com"):
            return self._parse_twitter(parts)
        if host == "reddit.com" or host.endswith(".reddit.com"):
            return self._parse_reddit(parts)
        if host in ("stackoverflow.com", "www.stackoverflow.com") or host.endswith(".stackexchange.com"):
            return self._parse_stackoverflow(parsed, host, parts)
        if host in ("npmjs.com", "www.npmjs.com"):
            return self._parse_npm(parsed, parts)
        return self._parse_generic(parsed, host, parts)

    def _parse_youtube(self, parsed: ParseResult, host: str, parts: list[str]) -> PlatformData:
        result = PlatformData(platform=Platform.YOUTUBE)
        query = parse_qs(parsed.query)

        if host == "youtu.be":
            if parts:
                result.content_type = "video"
                result.identifier = parts[0]
                result.set_extra("timestamp", query.get("t", [None])[0])
            return result

        if host == "music.youtube.com":
            result.subtype = "music"

        if parsed.path == "/watch":
            video_id = query.get("v", [None])[0]
            if video_id:
                result.content_type = "video"
                result.identifier = video_id
                result.set_extra("playlist_id", query.get("list", [None])[0])
                result.set_extra("timestamp", query.get("t", [None])[0])
        elif parts and parts[0] in ("shorts", "live") and len(parts) >= 2:
            result.content_type = "video"
            result.subtype = "short" if parts[0] == "shorts" else "live"
            result.identifier = parts[1]
        elif parts and parts[0].startswith("@"):
            handle = parts[0][1:]
            result.content_type = "channel"
            result.creator = f"@{handle}"
            result.identifier = handle
            result.set_extra("handle", f"@{handle}")
            if len(parts) > 1:
                result.set_extra("section", parts[1])
        elif parts and parts[0] in ("channel", "c", "user") and len(parts) >= 2:
            result.content_type = "channel"
            result.identifier = parts[1]
            result.set_extra("url_type", parts[0])
            if len(parts) > 2:
                result.set_extra("section", parts[2])
        elif parsed.path == "/playlist":
            list_id = query.get("list", [None])[0]
            if list_id:
                result.content_type = "playlist"
                result.identifier = list_id
        elif parsed.path == "/results":
            search = query.get("search_query", [None])[0]
            if search:
                result.content_type = "search"
                result.set_extra("query", search)
        return result

    def _parse_github(self, parsed: ParseResult, host: str, parts: list[str]) -> PlatformData:
        result = PlatformData(platform=Platform.GITHUB)

        if host == "gist.github.com":
            if parts:
                result.content_type = "gist"
                result.creator = parts[0]
                if len(parts) >= 2:
                    result.identifier = parts[1]
            return result

        if not parts:
            result.content_type = "home"
            return result

        if len(parts) == 1:
            if parts[0] in self.GITHUB_SPECIAL_PAGES:
                result.content_type = "special"
            else:
                result.content_type = "profile"
                result.creator = parts[0]
            result.identifier = parts[0]
            return result

        owner, repo = parts[0], parts[1]
        result.creator = owner
        result.identifier = repo
        result.set_extra("owner", owner)
        result.set_extra("repo", repo)

        if len(parts) == 2:
            result.content_type = "repo"
            return result

        section = parts[2]
        rest = parts[3:]
        if section == "issues":
            if rest and self.NUMERIC.match(rest[0]):
                result.content_type = "issue"
                result.set_extra("number", int(rest[0]))
            else:
                result.content_type = "issues"
                result.subtype = "new" if rest and rest[0] == "new" else "list"
        elif section == "pull" and rest and self.NUMERIC.match(rest[0]):
            result.content_type = "pr"
            result.set_extra("number", int(rest[0]))
            if len(rest) > 1:
                result.set_extra("tab", rest[1])
        elif section == "pulls":
            result.content_type = "pulls"
            result.subtype = "list"
        elif section in ("actions", "releases", "wiki", "discussions", "branches", "tags"):
            result.content_type = section
            if section == "wiki" and rest:
                result.set_extra("page", "/".join(rest))
            elif section == "releases" and rest and rest[0] == "tag" and len(rest) > 1:
                result.subtype = "tag"
                result.set_extra("tag", rest[1])
            elif section == "discussions" and rest and self.NUMERIC.match(rest[0]):
                result.subtype = "discussion"
                result.set_extra("number", int(rest[0]))
        elif section == "commit" and rest:
            result.content_type = "commit"
            result.set_extra("sha", rest[0])
        elif section == "commits":
            result.content_type = "commits"
            if rest:
                result.set_extra("branch", rest[0])
        elif section in ("blob", "tree"):
            result.content_type = "file"
            result.subtype = section
            if rest:
                result.set_extra("branch", rest[0])
            if len(rest) > 1:
                result.set_extra("path", "/".join(rest[1:]))
                ext = self.FILE_EXTENSION.search(rest[-1])
                if section == "blob" and ext:
                    result.set_extra("extension", ext.group(1).lower())
        elif section == "search":
            result.content_type = "search"
            result.set_extra("query", parse_qs(parsed.query).get("q", [None])[0])
        else:
            result.content_type = "repo"
            result.set_extra("sub_path", "/".join(parts[2:]))
        return result

    def _parse_medium(self, host: str, parts: list[str]) -> PlatformData:
        result = PlatformData(platform=Platform.MEDIUM, content_type="article")

        if host != "medium.com":
            result.set_extra("publication", host.removesuffix(".medium.com"))
            if parts and parts[0].startswith("@"):
                result.creator = parts[0]
            if parts and "-" in parts[-1]:
                result.identifier = parts[-1]
            return result

        if parts and parts[0].startswith("@"):
            result.creator = parts[0]
            if len(parts) == 1:
                result.content_type = "profile"
            else:
                result.identifier = parts[1]
            return result

        if parts:
            result.set_extra("publication", parts[0])
            if len(parts) >= 2:
                result.identifier = parts[-1]
        return result

    def _parse_devto(self, parts: list[str]) -> PlatformData:
        result = PlatformData(platform=Platform.DEVTO, content_type="article")
        if not parts:
            result.content_type = "home"
        elif parts[0] == "t" and len(parts) >= 2:
            result.content_type = "tag"
            result.identifier = parts[1]
        elif len(parts) == 1:
            result.content_type = "profile"
            result.creator = parts[0]
            result.identifier = parts[0]
        else:
            result.creator = parts[0]
            result.identifier = parts[1]
        return result

    def _parse_substack(self, host: str, parts: list[str]) -> PlatformData:
        publication = host.removesuffix(".substack.com")
        result = PlatformData(
            platform=Platform.SUBSTACK,
            content_type="publication",
            identifier=publication,
        )
        result.set_extra("publication", publication)
        if len(parts) >= 2 and parts[0] == "p":
            result.content_type = "article"
            result.identifier = parts[1]
        elif parts and parts[0] in ("archive", "about"):
            result.content_type = parts[0]
        return result

    def _parse_twitter(self, parts: list[str]) -> PlatformData:
        result = PlatformData(platform=Platform.TWITTER)
        if not parts:
            result.content_type = "home"
            return result
        if parts[0] in self.TWITTER_SPECIAL_PAGES:
            result.content_type = "special"
            result.identifier = parts[0]
            return result
        if parts[0] == "hashtag" and len(parts) >= 2:
            result.content_type = "hashtag"
            result.identifier = parts[1]
            return result

        username = parts[0]
        result.creator = f"@{username}"
        if len(parts) == 1:
            result.content_type = "profile"
            result.identifier = username
        elif parts[1] == "status" and len(parts) >= 3:
            result.content_type = "tweet"
            result.identifier = parts[2]
        elif parts[1] in self.TWITTER_PROFILE_SECTIONS:
            result.content_type = "profile"
            result.identifier = username
            result.set_extra("section", parts[1])
        return result

    def _parse_reddit(self, parts: list[str]) -> PlatformData:
        result = PlatformData(platform=Platform.REDDIT)
        if not parts:
            result.content_type = "home"
        elif parts[0] == "r" and len(parts) >= 2:
            subreddit = parts[1]
            result.content_type = "subreddit"
            result.creator = f"r/{subreddit}"
            result.identifier = subreddit
            if len(parts) >= 4 and parts[2] == "comments":
                result.content_type = "post"
                result.set_extra("post_id", parts[3])
                if len(parts) >= 5:
                    result.set_extra("slug", parts[4])
        elif parts[0] in ("u", "user") and len(parts) >= 2:
            result.content_type = "profile"
            result.creator = f"u/{parts[1]}"
            result.identifier = parts[1]
            if len(parts) >= 3:
                result.set_extra("section", parts[2])
        return result

    def _parse_stackoverflow(self, parsed: ParseResult, host: str, parts: list[str]) -> PlatformData:
        result = PlatformData(platform=Platform.STACKOVERFLOW)
        if host.endswith(".stackexchange.com"):
            result.set_extra("site", host.removesuffix(".stackexchange.com"))
        if not parts:
            result.content_type = "home"
        elif parts[0] == "questions" and len(parts) >= 2:
            if self.NUMERIC.match(parts[1]):
                result.content_type = "question"
                result.identifier = parts[1]
                if self.NUMERIC.match(parsed.fragment or ""):
                    result.subtype = "answer"
                    result.set_extra("answer_id", int(parsed.fragment))
            elif parts[1] == "tagged" and len(parts) >= 3:
                result.content_type = "tag"
                result.identifier = parts[2]
        elif parts[0] == "users" and len(parts) >= 2:
            result.content_type = "profile"
            result.identifier = parts[1]
            if len(parts) >= 3:
                result.creator = parts[2]
        elif parts[0] == "tags":
            result.content_type = "tags"
            if len(parts) >= 2:
                result.identifier = parts[1]
        return result

    def _parse_npm(self, parsed: ParseResult, parts: list[str]) -> PlatformData:
        result = PlatformData(platform=Platform.NPM, content_type="home")
        if not parts:
            return result
        if parts[0] == "package" and len(parts) >= 2:
            result.content_type = "package"
            if parts[1].startswith("@") and len(parts) >= 3:
                result.identifier = f"{parts[1]}/{parts[2]}"
                result.creator = parts[1]
            else:
                result.identifier = parts[1]
        elif parts[0].startswith("~"):
            result.content_type = "profile"
            result.creator = parts[0][1:]
            result.identifier = parts[0][1:]
        elif parts[0] == "org" and len(parts) >= 2:
            result.content_type = "org"
            result.creator = parts[1]
            result.identifier = parts[1]
        elif parts[0] == "search":
            result.content_type = "search"
            result.set_extra("query", parse_qs(parsed.query).get("q", [None])[0])
        return result

    def _parse_generic(self, parsed: ParseResult, host: str, parts: list[str]) -> PlatformData:
        result = PlatformData(platform=Platform.OTHER, content_type="page")
        result.set_extra("domain", host.removeprefix("www."))
        path = parsed.path

        if any(marker in path for marker in ("/blog/", "/article/", "/post/")):
            result.content_type = "article"
            result.identifier = parts[-1]
        if any(marker in path for marker in ("/docs/", "/documentation/", "/api/")):
            result.content_type = "documentation"
            result.identifier = parts[-1]
        if parts and (parts[0].startswith("@") or parts[0] in ("user", "profile")):
            result.content_type = "profile"
            result.creator = parts[0] if parts[0].startswith("@") else (parts[1] if len(parts) > 1 else parts[0])
        return result
