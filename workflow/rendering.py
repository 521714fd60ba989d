from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .state import DIMS10

MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^\s)]+)\)")
BULLET_RE = re.compile(r"^([•\-*]\s+)")

BUTTON_STYLE = (
    "display:block;width:100%;text-align:left;padding:12px 16px;margin:8px 0;border:2px solid #ddd;"
    "background:white;border-radius:8px;cursor:pointer;font-size:14px"
)
CONTINUE_STYLE = "margin-left:8px;padding:8px 12px;background:#0a7;color:white;border:none;border-radius:6px;cursor:pointer"
INPUT_STYLE = "padding:8px;border:1px solid #ddd;border-radius:6px"

RADIUS_CHOICES = [("10", "10 miles"), ("25", "25 miles"), ("50", "50 miles"), ("100", "100 miles"), ("9999", "Anywhere")]


@dataclass
class Reply:
    """One assistant turn, kept structured until the HTTP layer renders it."""

    blocks: List[str] = field(default_factory=list)
    links: List[Dict[str, str]] = field(default_factory=list)
    citations: List[int] = field(default_factory=list)
    profile: Optional[Dict[str, Any]] = None
    suppress_sidecar: bool = False

    @classmethod
    def text(cls, message: str, **kwargs: Any) -> "Reply":
        return cls(blocks=[html.escape(message, quote=False)], **kwargs)

    @classmethod
    def markup(cls, fragment: str, **kwargs: Any) -> "Reply":
        return cls(blocks=[fragment], **kwargs)

    @property
    def html(self) -> str:
        return "<br/><br/>".join(block for block in self.blocks if block)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"html": self.html}
        if self.profile is not None:
            payload["profile"] = self.profile
        if self.links:
            payload["links"] = self.links
        if self.suppress_sidecar:
            payload["suppress_sidecar"] = True
        return payload


def _safe_url(url: str) -> str:
    return str(url or "").replace('"', "%22").replace("'", "%27")


def course_profile_anchor(name: str, url: str) -> str:
    return f'<a href="#" onclick="showCourseProfile(\'{_safe_url(url)}\'); return false;">{name}</a>'


def visit_link(url: str, label: str = "Visit") -> str:
    return f'<a href="{_safe_url(url)}" target="_blank" rel="noreferrer">{label}</a>'


def _markdown_links(text: str) -> str:
    return MARKDOWN_LINK_RE.sub(
        lambda m: f'<a href="{_safe_url(m.group(2))}" target="_blank" rel="noreferrer">{m.group(1)}</a>', text
    )


def linkify_course_names(text: str, hints: Sequence[Dict[str, str]]) -> str:
    out = text
    for hint in hints or []:
        name = str(hint.get("name", "")).strip()
        url = str(hint.get("url", "")).strip()
        if not name or not url:
            continue
        pattern = re.compile(rf"\b{re.escape(name)}\b", re.IGNORECASE)
        out = pattern.sub(lambda m: course_profile_anchor(m.group(0), url), out)
    return out


def render_reply_html(text: str, link_hints: Sequence[Dict[str, str]] | None = None) -> str:
    """Paragraphs and bullet lists to HTML; markdown links and known course names become anchors."""
    hints = link_hints or []
    parts: List[str] = []
    paragraph: List[str] = []
    in_list = False

    def flush() -> None:
        if paragraph:
            parts.append(f"<p>{_markdown_links(linkify_course_names(' '.join(paragraph), hints))}</p>")
            paragraph.clear()

    for raw in re.split(r"\r?\n", str(text or "")):
        line = raw.strip()
        if not line:
            flush()
            if in_list:
                parts.append("</ul>")
                in_list = False
            continue
        if BULLET_RE.match(line):
            flush()
            if not in_list:
                parts.append("<ul>")
                in_list = True
            item = BULLET_RE.sub("", line).strip()
            parts.append(f"<li>{_markdown_links(linkify_course_names(item, hints))}</li>")
        else:
            paragraph.append(line)

    flush()
    if in_list:
        parts.append("</ul>")
    return "".join(parts)


def render_question_html(question: Dict[str, Any]) -> str:
    headline = html.escape(str(question.get("conversational_text") or question.get("text") or "").strip())
    out = f'<div style="font-size:18px;font-weight:600;margin:0 0 20px;color:#333">{headline}</div>'

    options = question.get("options") or []
    if not options:
        return out

    buttons: List[str] = []
    indices: List[str] = []
    for option in options:
        index = option.get("index", option.get("option_index", 0))
        label = html.escape(str(option.get("text", option.get("option_text", ""))))
        indices.append(str(index))
        buttons.append(
            f"<button onclick=\"(function(){{var box=document.getElementById('box');"
            f"if(box){{box.value='{index}';document.getElementById('btn').click();}}}})()\" "
            f'style="{BUTTON_STYLE}">{label}</button>'
        )
    out += f'<div style="margin:20px 0">{"".join(buttons)}</div>'
    out += (
        '<div style="text-align:center;color:#666;font-size:12px;margin-top:20px">'
        f"Or type a number ({', '.join(indices)}) in the chat below</div>"
    )
    return out


def location_form_html() -> str:
    options = "".join(
        f'<option value="{value}"{" selected" if value == "25" else ""}>{label}</option>'
        for value, label in RADIUS_CHOICES
    )
    return (
        '<div style="font-size:16px;margin:0 0 10px">Where are you looking for golf courses?</div>'
        '<div style="margin:10px 0">'
        f'<input type="text" id="zipcode" placeholder="ZIP (e.g., 02134)" style="{INPUT_STYLE};width:150px;margin-right:8px">'
        f'<select id="radius" style="{INPUT_STYLE}">{options}</select>'
        "<button onclick=\"(function(){var zip=document.getElementById('zipcode').value.trim();"
        "var radius=document.getElementById('radius').value.trim();var box=document.getElementById('box');"
        "if(box){box.value='LOCATION:'+zip+':'+radius;document.getElementById('btn').click();}})()\" "
        f'style="{CONTINUE_STYLE}">Continue</button>'
        "</div>"
    )


def date_form_html(prompt: str = "When would you like to play?") -> str:
    return (
        f'<div style="font-size:16px;margin:0 0 10px">{html.escape(prompt)}</div>'
        '<div style="margin:10px 0">'
        f'<input type="date" id="playdate" style="{INPUT_STYLE};margin-right:8px">'
        "<button onclick=\"(function(){var date=document.getElementById('playdate').value.trim();"
        "var box=document.getElementById('box');"
        "if(box){box.value='WHEN:'+date+'::any';document.getElementById('btn').click();}})()\" "
        f'style="{CONTINUE_STYLE}">Continue</button>'
        "</div>"
    )


def render_final_profile_html(profile: Dict[str, Any], scores: Dict[str, Any], total: int = 0) -> str:
    lines: List[str] = ["You've completed the quiz!"]
    if total:
        lines.append(f"Questions answered: {total}")
    lines.append("")

    courses = profile.get("matched_courses") or []
    if courses:
        lines.append("Matched Courses")
        for course in courses[:8]:
            payload = course.get("payload") or {}
            name = html.escape(str(course.get("name") or payload.get("course_name") or "Course"))
            score = course.get("score")
            suffix = f" – {score:.3f}" if isinstance(score, (int, float)) else ""
            url = course.get("url") or payload.get("course_url") or payload.get("website") or ""
            if url:
                lines.append(f"• {course_profile_anchor(name, url)}{suffix} {visit_link(url)}")
            else:
                lines.append(f"• {name}{suffix}")
        lines.append("")

    numeric = {k: v for k, v in (scores or {}).items() if isinstance(v, (int, float))}
    if numeric:
        lines.append("Your 10D Profile (0–10)")
        for dim in DIMS10:
            value = numeric.get(dim)
            shown = f"{value:.2f}" if value is not None else "—"
            lines.append(f"• {dim.replace('_', ' ')}: {shown}")

    return "<br/>".join(lines)


def render_links_list(links: Sequence[Dict[str, str]], heading: str = "Courses") -> str:
    seen = set()
    items: List[str] = []
    for link in links:
        url = str(link.get("url", "")).strip()
        if not url or url in seen:
            continue
        seen.add(url)
        name = html.escape(str(link.get("name") or link.get("title") or url))
        items.append(f"• {course_profile_anchor(name, url)} {visit_link(url)}")
    if not items:
        return ""
    return f"<strong>{html.escape(heading)}</strong><br/>" + "<br/>".join(items)
