# smartcare_auth/utils/html_pages.py
"""Complete, styled pages returned by the approve / deny links."""

from html import escape
from typing import Optional

_BACKGROUNDS = {
    "success": "linear-gradient(135deg, #d1fae5 0%, #a7f3d0 100%)",
    "warning": "linear-gradient(135deg, #fef3c7 0%, #fde68a 100%)",
    "danger": "linear-gradient(135deg, #fee2e2 0%, #fecaca 100%)",
}

_HEADING_COLORS = {
    "success": "#10b981",
    "warning": "#ef4444",
    "danger": "#ef4444",
}


def render_page(
    title: str,
    icon: str,
    heading: str,
    message: str,
    tone: str = "warning",
    note: Optional[str] = None,
    link_url: Optional[str] = None,
    link_label: str = "Go to Login",
) -> str:
    background = _BACKGROUNDS.get(tone, _BACKGROUNDS["warning"])
    color = _HEADING_COLORS.get(tone, "#ef4444")

    note_html = f'<p style="color: #9ca3af; font-size: 14px; margin: 0;">{escape(note)}</p>' if note else ""
    link_html = ""
    if link_url:
        link_html = f"""
      <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #e5e7eb;">
        <a href="{escape(link_url)}" style="display: inline-block; background: {color}; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: bold;">{escape(link_label)}</a>
      </div>"""

    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)} - Smart Care</title>
  </head>
  <body style="font-family: Arial, sans-serif; display: flex; justify-content: center; align-items: center; min-height: 100vh; margin: 0; background: {background};">
    <div style="background: white; padding: 40px; border-radius: 12px; box-shadow: 0 4px 6px rgba(0,0,0,0.1); text-align: center; max-width: 500px;">
      <div style="font-size: 48px; margin-bottom: 20px;">{icon}</div>
      <h1 style="color: {color}; margin: 0 0 10px 0;">{escape(heading)}</h1>
      <p style="color: #6b7280; margin: 0 0 20px 0;">{escape(message)}</p>
      {note_html}{link_html}
    </div>
  </body>
</html>
"""


def approval_failed_page(reason: str) -> str:
    return render_page("Approval Failed", "❌", "Approval Failed", reason, tone="warning")


def approval_succeeded_page(login_url: str) -> str:
    return render_page(
        "Login Approved",
        "✅",
        "Login Approved!",
        "The device has been approved and can now access your Smart Care account.",
        tone="success",
        note="You can close this page. The user can now proceed with login.",
        link_url=login_url,
    )


def denial_failed_page(reason: str) -> str:
    return render_page("Denial Failed", "❌", "Denial Failed", reason, tone="danger")


def denial_succeeded_page(login_url: str) -> str:
    return render_page(
        "Login Denied",
        "🚫",
        "Login Denied",
        "The login attempt has been denied. The device was not granted access to your account.",
        tone="danger",
        note="If you did not try to sign in, consider changing your password.",
        link_url=login_url,
    )
