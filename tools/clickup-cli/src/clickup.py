#!/usr/bin/env python3
"""
clickup-cli - command line client for the ClickUp API v2

Task, comment, attachment, tag and custom field operations using a personal
API token. Data is printed to stdout as JSON (or a table); diagnostics go to
stderr.
"""

import argparse
import json
import logging
import os
import re
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import quote

import requests
from dotenv import load_dotenv
from tabulate import tabulate

from clickup_download import DownloadFailed, backoff_sleep, download_file


TOOL_DIR = Path(__file__).resolve().parent.parent
BASE_URL = "https://api.clickup.com/api/v2"
RETRY_BASE_DELAY = 1.0

IMAGE_TITLE_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp|bmp|svg)$", re.IGNORECASE)
UNSAFE_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]')


class ClickUpError(Exception):
    """Base class for errors reported to the user."""
    pass


class MissingArgument(ClickUpError):
    pass


class InvalidArgument(ClickUpError):
    pass


class MissingCredential(ClickUpError):
    pass


class ApiError(ClickUpError):
    """HTTP error (or network failure) talking to ClickUp."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidJson(ClickUpError):
    pass


class NoValidFields(ClickUpError):
    pass


class NotFound(ClickUpError):
    pass


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidArgument(f"{name} must be an integer, got {raw!r}")


@dataclass
class Config:
    """Settings resolved once at startup and passed to the client and handlers."""

    api_key: str = ""
    base_url: str = BASE_URL
    attachments_dir: Path = Path("./clickup_attachments")
    team_id: Optional[str] = None
    default_list_id: Optional[str] = None
    default_priority: int = 3
    default_status: str = "Open"
    timeout: int = 30
    max_retries: int = 1
    page_size: int = 100
    user_agent: str = "ClickUp-API-Client/2.0"
    debug: bool = False
    download_timeout: int = 30
    download_retries: int = 3

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        env = os.environ if env is None else env
        return cls(
            api_key=env.get("CLICKUP_API_KEY") or env.get("CLICKUP_TOKEN") or "",
            base_url=env.get("CLICKUP_BASE_URL") or BASE_URL,
            attachments_dir=Path(env.get("CLICKUP_ATTACHMENTS_DIR") or "./clickup_attachments").expanduser(),
            team_id=env.get("CLICKUP_TEAM_ID") or None,
            default_list_id=env.get("CLICKUP_DEFAULT_LIST_ID") or None,
            default_priority=_env_int(env, "CLICKUP_DEFAULT_PRIORITY", 3),
            default_status=env.get("CLICKUP_DEFAULT_STATUS") or "Open",
            timeout=_env_int(env, "CLICKUP_TIMEOUT", 30),
            max_retries=_env_int(env, "CLICKUP_MAX_RETRIES", 1),
            page_size=_env_int(env, "CLICKUP_PAGE_SIZE", 100),
            user_agent=env.get("CLICKUP_USER_AGENT") or "ClickUp-API-Client/2.0",
            debug=(env.get("CLICKUP_DEBUG") or "").strip().lower() == "true",
            download_timeout=_env_int(env, "CLICKUP_DOWNLOAD_TIMEOUT", 30),
            download_retries=_env_int(env, "CLICKUP_DOWNLOAD_RETRIES", 3),
        )


def _retry_after_seconds(response: requests.Response) -> Optional[int]:
    raw = response.headers.get("Retry-After")
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("err", "error", "message"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


class ClickUpClient:
    """Client for the ClickUp REST API."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": config.api_key,
            "Content-Type": "application/json",
            "User-Agent": config.user_agent,
        })

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        data: Optional[dict] = None,
    ) -> Any:
        """Make an API request and return the decoded JSON body.

        Only 429, 5xx and network errors are retried, and only when
        max_retries > 1.
        """
        if not self.config.api_key:
            raise MissingCredential(
                "CLICKUP_API_KEY (or CLICKUP_TOKEN) is not set. "
                "Get a token from https://app.clickup.com/settings/apps"
            )
        url = f"{self.base_url}{endpoint}"
        attempts = max(1, self.config.max_retries)
        attempt = 0
        while True:
            attempt += 1
            logging.debug("%s %s (attempt %d/%d)", method, url, attempt, attempts)
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=data,
                    timeout=self.config.timeout,
                )
            except requests.exceptions.RequestException as e:
                if attempt < attempts:
                    logging.warning("Network error (%s); retrying (attempt %d/%d)...", e, attempt, attempts)
                    backoff_sleep(RETRY_BASE_DELAY, attempt - 1)
                    continue
                raise ApiError(f"Network error: {e}")

            status = response.status_code
            if (status == 429 or status >= 500) and attempt < attempts:
                wait = _retry_after_seconds(response) if status == 429 else None
                logging.warning("HTTP %s; retrying (attempt %d/%d)...", status, attempt, attempts)
                if wait:
                    time.sleep(wait)
                else:
                    backoff_sleep(RETRY_BASE_DELAY, attempt - 1)
                continue
            break

        logging.debug("HTTP status: %s", status)
        if status >= 400:
            raise ApiError(f"API request failed: {_error_message(response)} (HTTP {status})", status_code=status)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise InvalidJson(f"{method} {endpoint} returned a body that is not valid JSON")

    def get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        return self._request("GET", endpoint, params=params)

    def post(self, endpoint: str, data: Optional[dict] = None) -> Any:
        return self._request("POST", endpoint, data=data)

    def put(self, endpoint: str, data: Optional[dict] = None) -> Any:
        return self._request("PUT", endpoint, data=data)

    def delete(self, endpoint: str, data: Optional[dict] = None) -> Any:
        return self._request("DELETE", endpoint, data=data)

    def paginate(self, endpoint: str, params: Optional[dict] = None) -> Dict[str, Any]:
        """Fetch every page of a task listing and merge the `tasks` arrays."""
        tasks: List[Dict[str, Any]] = []
        page = 0
        while True:
            resp = self.get(endpoint, params={**(params or {}), "page": page})
            batch = resp.get("tasks", []) or []
            tasks.extend(batch)
            logging.debug("Fetched %d tasks from page %d", len(batch), page)
            if len(batch) < self.config.page_size:
                break
            page += 1
        return {"tasks": tasks}

    def get_task(self, task_id: str, **params: str) -> Dict[str, Any]:
        return self.get(f"/task/{task_id}", params=params or None)


# --- Request payloads ---

def parse_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def parse_int(raw: str, what: str) -> int:
    try:
        return int(str(raw).strip())
    except ValueError:
        raise InvalidArgument(f"{what} must be a number, got {raw!r}")


def _to_bool(raw: str) -> bool:
    return raw.strip().lower() in ("true", "1")


# Fields not listed here are sent as strings.
FIELD_TYPES: Dict[str, Callable[[str], Any]] = {
    "priority": int,
    "time_estimate": int,
    "archived": _to_bool,
}


def parse_field_assignments(pairs: List[str]) -> Dict[str, Any]:
    """Turn `key=value` arguments into a typed update body."""
    body: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            logging.warning("Skipping %r (expected field=value)", pair)
            continue
        convert = FIELD_TYPES.get(key, str)
        try:
            body[key] = convert(value)
        except ValueError:
            raise InvalidArgument(f"Field '{key}' expects a number, got {value!r}")
    if not body:
        raise NoValidFields("No valid field=value pairs provided")
    return body


@dataclass
class NewTask:
    name: str
    description: str = ""
    priority: int = 3
    tags: List[str] = field(default_factory=list)
    status: str = "Open"
    custom_fields: List[Dict[str, Any]] = field(default_factory=list)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "priority": self.priority,
            "tags": list(self.tags),
            "status": self.status,
        }
        if self.custom_fields:
            body["custom_fields"] = list(self.custom_fields)
        return body


@dataclass
class BatchOutcome:
    """Per-item results of a command that keeps going past failures."""

    results: List[Dict[str, Any]] = field(default_factory=list)

    def record(self, item_id: Any, error: Optional[str] = None, **extra: Any) -> None:
        row: Dict[str, Any] = {"id": item_id, "ok": error is None}
        row.update(extra)
        if error is not None:
            row["error"] = error
        self.results.append(row)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r["ok"])

    @property
    def succeeded(self) -> int:
        return len(self.results) - self.failed

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {"results": self.results, "succeeded": self.succeeded, "failed": self.failed}


# --- Attachments ---

def sanitize_filename(name: str) -> str:
    out = UNSAFE_FILENAME_CHARS.sub("_", name or "").strip()
    if out.startswith("."):
        out = out[1:]
    # "", "." and ".." would resolve to the directory itself
    if not out.strip("."):
        return "unnamed_file"
    return out


def is_image_attachment(att: Dict[str, Any]) -> bool:
    return att.get("type") == "image" or bool(IMAGE_TITLE_RE.search(att.get("title") or ""))


def task_attachments(client: ClickUpClient, task_id: str) -> List[Dict[str, Any]]:
    task = client.get_task(task_id)
    return task.get("attachments") or []


def fetch_attachment(config: Config, att: Dict[str, Any]) -> Path:
    dest = Path(config.attachments_dir) / sanitize_filename(att.get("title") or "")
    logging.info("Downloading: %s", att.get("title"))
    return download_file(
        att.get("url") or "",
        dest,
        retries=config.download_retries,
        timeout=config.download_timeout,
        quiet=True,
    )


# --- Command handlers ---

def cmd_get_task(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get_task(args.task_id, include_subtasks="true", include_task_comments="true")


def cmd_create_task(client: ClickUpClient, args: argparse.Namespace) -> Any:
    cfg = client.config
    task = NewTask(
        name=args.name,
        description=args.desc or "",
        priority=parse_int(args.priority, "PRIORITY") if args.priority else cfg.default_priority,
        tags=parse_tags(args.tags),
        status=args.status or cfg.default_status,
    )
    resp = client.post(f"/list/{args.list_id}/task", task.to_body())
    logging.info("Task created. ID: %s", resp.get("id"))
    return resp


def cmd_create_task_with_fields(client: ClickUpClient, args: argparse.Namespace) -> Any:
    cfg = client.config
    task = NewTask(
        name=args.name,
        description=args.desc or "",
        priority=parse_int(args.priority, "PRIORITY") if args.priority else cfg.default_priority,
        tags=parse_tags(args.tags),
        status=cfg.default_status,
        custom_fields=[{"id": args.field_id, "value": args.value}],
    )
    resp = client.post(f"/list/{args.list_id}/task", task.to_body())
    logging.info("Task created. ID: %s", resp.get("id"))
    return resp


def cmd_update_task(client: ClickUpClient, args: argparse.Namespace) -> Any:
    body: Dict[str, Any] = {"name": args.name}
    if args.description:
        body["description"] = args.description
    resp = client.put(f"/task/{args.task_id}", body)
    logging.info("Task updated")
    return resp


def cmd_update_task_fields(client: ClickUpClient, args: argparse.Namespace) -> Any:
    body = parse_field_assignments(args.fields or [])
    resp = client.put(f"/task/{args.task_id}", body)
    logging.info("Updated fields: %s", ", ".join(body))
    return resp


def cmd_update_status(client: ClickUpClient, args: argparse.Namespace) -> Any:
    resp = client.put(f"/task/{args.task_id}", {"status": args.status})
    logging.info("Status updated to: %s", args.status)
    return resp


def cmd_batch_update_status(client: ClickUpClient, args: argparse.Namespace) -> BatchOutcome:
    if not args.task_ids:
        raise MissingArgument(f"At least one TASK_ID required. Usage: clickup {args.usage_line}")
    logging.info("Updating %d task(s) to status: %s", len(args.task_ids), args.status)
    outcome = BatchOutcome()
    for task_id in args.task_ids:
        try:
            client.put(f"/task/{task_id}", {"status": args.status})
        except MissingCredential:
            raise
        except ClickUpError as e:
            logging.warning("%s: failed (%s)", task_id, e)
            outcome.record(task_id, error=str(e))
        else:
            logging.info("%s: updated", task_id)
            outcome.record(task_id)
    logging.info("Complete: %d succeeded, %d failed", outcome.succeeded, outcome.failed)
    return outcome


def cmd_get_subtasks(client: ClickUpClient, args: argparse.Namespace) -> Any:
    task = client.get_task(args.task_id, include_subtasks="true")
    subtasks = task.get("subtasks") or []
    if not subtasks:
        logging.info("No subtasks found")
    return subtasks


def cmd_get_list(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get(f"/list/{args.list_id}")


def _bool_flag(raw: Optional[str], default: str, what: str) -> str:
    val = (raw or default).strip().lower()
    if val not in ("true", "false"):
        raise InvalidArgument(f"{what} must be true or false, got {raw!r}")
    return val


def cmd_fetch_tasks(client: ClickUpClient, args: argparse.Namespace) -> Any:
    params = {
        "archived": _bool_flag(args.archived, "false", "ARCHIVED"),
        "subtasks": _bool_flag(args.subtasks, "true", "SUBTASKS"),
        "include_closed": "true",
        "page_size": client.config.page_size,
    }
    logging.info("Fetching all tasks (this may take a moment for large lists)...")
    return client.paginate(f"/list/{args.list_id}/task", params)


def cmd_search_tasks(client: ClickUpClient, args: argparse.Namespace) -> Any:
    # requests percent-encodes the query value
    params = {
        "name": args.query,
        "include_closed": "true",
        "page_size": client.config.page_size,
    }
    return client.paginate(f"/team/{args.team_id}/task", params)


def cmd_get_comments(client: ClickUpClient, args: argparse.Namespace) -> Any:
    data = client.get(f"/task/{args.task_id}/comment")
    flat: List[Dict[str, Any]] = []
    for comment in data.get("comments", []) or []:
        flat.append(comment)
        try:
            reply_count = int(comment.get("reply_count") or 0)
        except (TypeError, ValueError):
            reply_count = 0
        if reply_count > 0:
            replies = client.get(f"/comment/{comment.get('id')}/reply")
            flat.extend(replies.get("comments") or replies.get("replies") or [])
    return {"comments": flat}


def cmd_add_comment(client: ClickUpClient, args: argparse.Namespace) -> Any:
    resp = client.post(f"/task/{args.task_id}/comment", {"comment_text": args.text})
    logging.info("Comment added successfully")
    return resp


def cmd_resolve_comment(client: ClickUpClient, args: argparse.Namespace) -> Any:
    resp = client.put(f"/comment/{args.comment_id}", {"resolved": True})
    logging.info("Comment marked as resolved")
    return resp


def cmd_unresolve_comment(client: ClickUpClient, args: argparse.Namespace) -> Any:
    resp = client.put(f"/comment/{args.comment_id}", {"resolved": False})
    logging.info("Comment marked as unresolved")
    return resp


def cmd_assign_comment(client: ClickUpClient, args: argparse.Namespace) -> Any:
    user = parse_int(args.user_id, "USER_ID")
    resp = client.put(f"/comment/{args.comment_id}", {"assignee": user})
    logging.info("Comment assigned to user %s", user)
    return resp


def cmd_unassign_comment(client: ClickUpClient, args: argparse.Namespace) -> Any:
    resp = client.put(f"/comment/{args.comment_id}", {"assignee": None})
    logging.info("Comment unassigned")
    return resp


def cmd_get_attachments(client: ClickUpClient, args: argparse.Namespace) -> Any:
    attachments = task_attachments(client, args.task_id)
    if not attachments:
        logging.info("No attachments found for task %s", args.task_id)
    return attachments


def cmd_download_attachment(client: ClickUpClient, args: argparse.Namespace) -> Any:
    for att in task_attachments(client, args.task_id):
        if str(att.get("id")) == args.attachment_id:
            path = fetch_attachment(client.config, att)
            logging.info("Downloaded to: %s", path)
            return {"id": att.get("id"), "title": att.get("title"), "path": str(path)}
    raise NotFound(f"Attachment {args.attachment_id} not found in task {args.task_id}")


def cmd_auto_download_images(client: ClickUpClient, args: argparse.Namespace) -> BatchOutcome:
    images = [a for a in task_attachments(client, args.task_id) if is_image_attachment(a)]
    outcome = BatchOutcome()
    if not images:
        logging.info("No image attachments found")
        return outcome
    logging.info("Found %d image(s) to download", len(images))
    for att in images:
        try:
            path = fetch_attachment(client.config, att)
        except DownloadFailed as e:
            logging.warning("%s: download failed (%s)", att.get("title"), e)
            outcome.record(att.get("id"), error=str(e), title=att.get("title"))
        else:
            outcome.record(att.get("id"), title=att.get("title"), path=str(path))
    logging.info("Downloads complete. Files in: %s", client.config.attachments_dir)
    return outcome


def cmd_get_teams(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get("/team")


def cmd_get_spaces(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get(f"/team/{args.team_id}/space", params={"archived": "false"})


def cmd_get_lists_in_space(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get(f"/space/{args.space_id}/list", params={"archived": "false"})


def cmd_get_folders(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get(f"/space/{args.space_id}/folder", params={"archived": "false"})


def cmd_get_lists_in_folder(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get(f"/folder/{args.folder_id}/list", params={"archived": "false"})


def cmd_get_team_members(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get(f"/team/{args.team_id}")


def cmd_assign_user(client: ClickUpClient, args: argparse.Namespace) -> Any:
    user = parse_int(args.user_id, "USER_ID")
    resp = client.put(f"/task/{args.task_id}", {"assignees": {"add": [user]}})
    logging.info("User assigned to task")
    return resp


def cmd_unassign_user(client: ClickUpClient, args: argparse.Namespace) -> Any:
    user = parse_int(args.user_id, "USER_ID")
    resp = client.put(f"/task/{args.task_id}", {"assignees": {"rem": [user]}})
    logging.info("User unassigned from task")
    return resp


def cmd_list_space_tags(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get(f"/space/{args.space_id}/tag")


def cmd_create_space_tag(client: ClickUpClient, args: argparse.Namespace) -> Any:
    body = {"tag": {"name": args.name, "tag_fg": args.fg or "#0A84FF", "tag_bg": args.bg or "#FFFFFF"}}
    resp = client.post(f"/space/{args.space_id}/tag", body)
    logging.info("Tag created: %s", args.name)
    return resp


def cmd_delete_space_tag(client: ClickUpClient, args: argparse.Namespace) -> Any:
    resp = client.delete(f"/space/{args.space_id}/tag/{quote(args.name, safe='')}", {"tag": {"name": args.name}})
    logging.info("Tag deleted: %s", args.name)
    return resp


def _task_tag_names(client: ClickUpClient, task_id: str) -> List[str]:
    task = client.get_task(task_id)
    return [t.get("name") for t in task.get("tags") or [] if t.get("name")]


def cmd_add_task_tag(client: ClickUpClient, args: argparse.Namespace) -> Any:
    tags = _task_tag_names(client, args.task_id)
    if args.tag in tags:
        logging.warning("Tag '%s' already exists on task", args.tag)
        return {"id": args.task_id, "tags": tags, "changed": False}
    client.post(f"/task/{args.task_id}/tag/{quote(args.tag, safe='')}")
    logging.info("Tag added: %s", args.tag)
    return {"id": args.task_id, "tags": tags + [args.tag], "changed": True}


def cmd_remove_task_tag(client: ClickUpClient, args: argparse.Namespace) -> Any:
    tags = _task_tag_names(client, args.task_id)
    if args.tag not in tags:
        logging.warning("Tag '%s' not found on task", args.tag)
        return {"id": args.task_id, "tags": tags, "changed": False}
    client.delete(f"/task/{args.task_id}/tag/{quote(args.tag, safe='')}")
    logging.info("Tag removed: %s", args.tag)
    return {"id": args.task_id, "tags": [t for t in tags if t != args.tag], "changed": True}


def cmd_list_custom_fields(client: ClickUpClient, args: argparse.Namespace) -> Any:
    return client.get(f"/list/{args.list_id}/field")


def cmd_set_custom_field(client: ClickUpClient, args: argparse.Namespace) -> Any:
    resp = client.post(f"/task/{args.task_id}/field/{args.field_id}", {"value": args.value})
    logging.info("Custom field updated")
    return resp


def cmd_get_task_custom_fields(client: ClickUpClient, args: argparse.Namespace) -> Any:
    fields = client.get_task(args.task_id).get("custom_fields") or []
    if not fields:
        logging.info("No custom fields found")
    return fields


# --- Output ---

def _table_rows(data: Any) -> Optional[List[Dict[str, Any]]]:
    if isinstance(data, list):
        return [r for r in data if isinstance(r, dict)]
    if isinstance(data, dict):
        for val in data.values():
            if isinstance(val, list) and all(isinstance(r, dict) for r in val):
                return val
    return None


def format_output(data: Any, fmt: str = "json") -> str:
    """Render a result as JSON or, for list-shaped results, a table."""
    if fmt == "table":
        rows = _table_rows(data)
        if rows is not None:
            if not rows:
                return "(no results)"
            cols = [k for k, v in rows[0].items() if not isinstance(v, (dict, list))]
            return tabulate([[r.get(c) for c in cols] for r in rows], headers=cols)
    return json.dumps(data, indent=2, ensure_ascii=False)


# --- Argument parsing ---

# Positionals that fall back to a configured default when omitted or given as "-"
CONFIG_FALLBACKS = {
    "list_id": "default_list_id",
    "team_id": "team_id",
}


def check_required(args: argparse.Namespace, config: Config) -> None:
    """Fail before any network call if a required positional is missing."""
    for dest in getattr(args, "required", ()):
        val = getattr(args, dest, None)
        if val is None or not val.strip() or (val.strip() == "-" and dest in CONFIG_FALLBACKS):
            fallback = getattr(config, CONFIG_FALLBACKS.get(dest, ""), None)
            if val != "" and fallback:
                setattr(args, dest, fallback)
                continue
            raise MissingArgument(f"{dest.upper()} required. Usage: clickup {args.usage_line}")


def _command(sp, name: str, func, help_text: str, required=(), optional=(), rest: Optional[str] = None):
    cp = sp.add_parser(name, help=help_text)
    for metavar in (*required, *optional):
        cp.add_argument(metavar.lower(), metavar=metavar, nargs="?")
    usage = [*required, *(f"[{o}]" for o in optional)]
    if rest:
        cp.add_argument(rest.lower(), metavar=rest, nargs="*")
        usage.append(f"{rest}...")
    cp.set_defaults(
        func=func,
        required=tuple(r.lower() for r in required),
        usage_line=" ".join([name, *usage]),
    )
    return cp


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="clickup",
        description="ClickUp API client (personal token)",
        epilog="Set CLICKUP_API_KEY (or CLICKUP_TOKEN) in the environment or a .env file.",
    )
    p.add_argument("--env", help="Path to a .env file (default tools/clickup-cli/.env)")
    p.add_argument("--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--format", "-f", choices=["json", "table"], default="json", help="Output format (default: json)")

    sp = p.add_subparsers(dest="cmd", metavar="COMMAND")

    # Tasks
    _command(sp, "get-task", cmd_get_task, "Get task details", ["TASK_ID"])
    _command(sp, "create-task", cmd_create_task, "Create a task",
             ["LIST_ID", "NAME"], ["DESC", "PRIORITY", "TAGS", "STATUS"])
    _command(sp, "create-task-with-fields", cmd_create_task_with_fields, "Create a task with a custom field",
             ["LIST_ID", "NAME", "DESC", "FIELD_ID", "VALUE"], ["PRIORITY", "TAGS"])
    _command(sp, "update-task", cmd_update_task, "Update task name/description",
             ["TASK_ID", "NAME"], ["DESCRIPTION"])
    _command(sp, "update-task-fields", cmd_update_task_fields, "Update arbitrary fields (field=value)",
             ["TASK_ID"], rest="FIELDS")
    _command(sp, "update-status", cmd_update_status, "Update task status", ["TASK_ID", "STATUS"])
    _command(sp, "batch-update-status", cmd_batch_update_status, "Set the same status on several tasks",
             ["STATUS"], rest="TASK_IDS")
    _command(sp, "get-subtasks", cmd_get_subtasks, "Get task subtasks", ["TASK_ID"])
    _command(sp, "get-list", cmd_get_list, "Get list details", ["LIST_ID"])
    _command(sp, "fetch-tasks", cmd_fetch_tasks, "Get all tasks in a list (all pages)",
             ["LIST_ID"], ["ARCHIVED", "SUBTASKS"])
    _command(sp, "search-tasks", cmd_search_tasks, "Search tasks in a team (all pages)", ["TEAM_ID", "QUERY"])

    # Comments
    _command(sp, "get-comments", cmd_get_comments, "Get comments with replies", ["TASK_ID"])
    _command(sp, "add-comment", cmd_add_comment, "Add a comment", ["TASK_ID", "TEXT"])
    _command(sp, "resolve-comment", cmd_resolve_comment, "Mark comment as resolved", ["COMMENT_ID"])
    _command(sp, "unresolve-comment", cmd_unresolve_comment, "Mark comment as unresolved", ["COMMENT_ID"])
    _command(sp, "assign-comment", cmd_assign_comment, "Assign comment to a user", ["COMMENT_ID", "USER_ID"])
    _command(sp, "unassign-comment", cmd_unassign_comment, "Unassign comment", ["COMMENT_ID"])

    # Attachments
    _command(sp, "get-attachments", cmd_get_attachments, "List attachments", ["TASK_ID"])
    _command(sp, "download-attachment", cmd_download_attachment, "Download one attachment",
             ["TASK_ID", "ATTACHMENT_ID"])
    _command(sp, "auto-download-images", cmd_auto_download_images, "Download all image attachments", ["TASK_ID"])

    # Organization
    _command(sp, "get-teams", cmd_get_teams, "List all teams (workspaces)")
    _command(sp, "get-spaces", cmd_get_spaces, "List spaces in a team", ["TEAM_ID"])
    _command(sp, "get-lists-in-space", cmd_get_lists_in_space, "List folderless lists in a space", ["SPACE_ID"])
    _command(sp, "get-folders", cmd_get_folders, "List folders in a space", ["SPACE_ID"])
    _command(sp, "get-lists-in-folder", cmd_get_lists_in_folder, "List lists in a folder", ["FOLDER_ID"])
    _command(sp, "get-team-members", cmd_get_team_members, "List team members", ["TEAM_ID"])
    _command(sp, "assign-user", cmd_assign_user, "Assign a user to a task", ["TASK_ID", "USER_ID"])
    _command(sp, "unassign-user", cmd_unassign_user, "Unassign a user from a task", ["TASK_ID", "USER_ID"])

    # Tags
    _command(sp, "list-space-tags", cmd_list_space_tags, "List tags in a space", ["SPACE_ID"])
    _command(sp, "create-space-tag", cmd_create_space_tag, "Create a space tag", ["SPACE_ID", "NAME"], ["FG", "BG"])
    _command(sp, "delete-space-tag", cmd_delete_space_tag, "Delete a space tag", ["SPACE_ID", "NAME"])
    _command(sp, "add-task-tag", cmd_add_task_tag, "Add a tag to a task", ["TASK_ID", "TAG"])
    _command(sp, "remove-task-tag", cmd_remove_task_tag, "Remove a tag from a task", ["TASK_ID", "TAG"])

    # Custom fields
    _command(sp, "list-custom-fields", cmd_list_custom_fields, "List custom fields of a list", ["LIST_ID"])
    _command(sp, "set-custom-field", cmd_set_custom_field, "Set a custom field value",
             ["TASK_ID", "FIELD_ID", "VALUE"])
    _command(sp, "get-task-custom-fields", cmd_get_task_custom_fields, "Get task custom fields", ["TASK_ID"])

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.cmd:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    load_dotenv(args.env or TOOL_DIR / ".env")
    try:
        config = Config.from_env()
    except ClickUpError as e:
        logging.error("%s", e)
        return 1
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        check_required(args, config)
        client = ClickUpClient(config)
        result = args.func(client, args)
    except (ClickUpError, DownloadFailed) as e:
        logging.error("%s", e)
        return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        return 130

    if isinstance(result, BatchOutcome):
        print(format_output(result.to_dict(), args.format))
        return 0 if result.ok else 1
    print(format_output(result, args.format))
    return 0


if __name__ == "__main__":
    sys.exit(main())
