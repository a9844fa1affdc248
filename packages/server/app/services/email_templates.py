"""HTML bodies for transactional email."""

from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Iterable, NamedTuple, Optional

from app.core.email import EmailMessage

_BODY_STYLE = (
    "font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; "
    "line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;"
)
_BUTTON_STYLE = (
    "display: inline-block; background-color: #2563eb; color: white; "
    "padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: 600;"
)


def _page(inner: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
        f"<body style=\"{_BODY_STYLE}\">{inner}</body></html>"
    )


def _button(url: str, label: str) -> str:
    return (
        "<div style=\"text-align: center; margin: 30px 0;\">"
        f"<a href=\"{escape(url, quote=True)}\" style=\"{_BUTTON_STYLE}\">{escape(label)}</a>"
        "</div>"
    )


def sign_in_email(to: str, code: str, link: str, code_ttl_minutes: int) -> EmailMessage:
    inner = (
        "<h2 style=\"color: #2563eb;\">Your sign-in code</h2>"
        "<p>Use this code to sign in to Nuclio:</p>"
        "<p style=\"font-size: 32px; font-weight: bold; letter-spacing: 8px; "
        f"color: #2563eb; text-align: center;\">{escape(code)}</p>"
        f"<p style=\"color: #666; font-size: 14px;\">This code will expire in "
        f"{code_ttl_minutes} minutes.</p>"
        "<p>Or sign in with one click:</p>"
        f"{_button(link, 'Sign In')}"
        "<p style=\"color: #666; font-size: 12px;\">If you didn't request this code, "
        "you can safely ignore this email.</p>"
    )
    return EmailMessage(to=to, subject="Your Nuclio sign-in code", html=_page(inner))


def invitation_email(
    to: str, inviter_name: str, org_name: str, invite_url: str, ttl_days: int
) -> EmailMessage:
    inner = (
        "<h2 style=\"color: #2563eb;\">You've been invited!</h2>"
        f"<p>{escape(inviter_name)} has invited you to join "
        f"<strong>{escape(org_name)}</strong> on Nuclio.</p>"
        f"{_button(invite_url, 'Accept Invitation')}"
        "<p style=\"color: #666; font-size: 12px; word-break: break-all;\">"
        f"{escape(invite_url)}</p>"
        f"<p style=\"color: #666; font-size: 14px;\">This invitation will expire in {ttl_days} days.</p>"
    )
    return EmailMessage(
        to=to, subject=f"Invitation to join {org_name or 'Nuclio'}", html=_page(inner)
    )


class PendingTodo(NamedTuple):
    title: str
    owner_name: str
    due_date: Optional[datetime]
    description: Optional[str]


def batched_todos_email(to: str, todos: Iterable[PendingTodo], app_url: str) -> EmailMessage:
    todos = list(todos)
    count = len(todos)
    noun = "todo" if count == 1 else "todos"
    items = []
    for todo in todos:
        due = todo.due_date.strftime("%Y-%m-%d") if todo.due_date else "No due date"
        description = f"<br>{escape(todo.description)}" if todo.description else ""
        items.append(
            "<div style=\"border-left: 3px solid #2563eb; padding-left: 15px; margin-bottom: 20px;\">"
            f"<h3 style=\"margin: 0 0 5px 0; color: #2563eb;\">{escape(todo.title)}</h3>"
            f"<p style=\"margin: 0; color: #666; font-size: 14px;\">Created by "
            f"{escape(todo.owner_name)} &bull; Due: {due}{description}</p>"
            "</div>"
        )
    inner = (
        "<h2 style=\"color: #2563eb;\">New Shared Todos</h2>"
        f"<p>You have {count} new shared {noun}:</p>"
        f"{''.join(items)}"
        f"{_button(app_url, 'View Todos')}"
    )
    return EmailMessage(
        to=to, subject=f"You have {count} new shared {noun}", html=_page(inner)
    )


def message_notification_email(
    to: str, todo_title: str, author_name: str, content: str, todo_url: str
) -> EmailMessage:
    inner = (
        "<h2 style=\"color: #2563eb;\">New message</h2>"
        f"<p><strong>{escape(todo_title)}</strong></p>"
        f"<p>From: {escape(author_name)}</p>"
        f"<p>{escape(content)}</p>"
        f"{_button(todo_url, 'View Todo')}"
    )
    return EmailMessage(to=to, subject=f"New message on: {todo_title}", html=_page(inner))


def feedback_email(to: str, from_email: str, feedback: str) -> EmailMessage:
    inner = (
        "<h2 style=\"color: #2563eb;\">New Feedback from Nuclio</h2>"
        f"<p><strong>From:</strong> {escape(from_email)}</p>"
        "<div style=\"background-color: #f3f4f6; border-left: 4px solid #2563eb; padding: 15px;\">"
        f"<p style=\"margin: 0; white-space: pre-wrap;\">{escape(feedback.strip())}</p>"
        "</div>"
    )
    return EmailMessage(to=to, subject=f"Feedback from Nuclio - {from_email}", html=_page(inner))
