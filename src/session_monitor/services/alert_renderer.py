"""Disconnection alert email rendering."""

from __future__ import annotations

from datetime import datetime, timedelta

from jinja2 import Environment, select_autoescape

from healthcore.clock import ensure_utc, format_duration
from healthcore.database import ChannelSessionModel
from healthcore.models import SessionStatus

from ..schemas.passes import AlertedSession

STATUS_LABELS = {
    SessionStatus.DISCONNECTED.value: "Disconnected",
    SessionStatus.ERROR.value: "Error",
    SessionStatus.CONNECTING.value: "Connecting",
    SessionStatus.AWAITING_REAUTH.value: "Re-authentication required",
}

ALERT_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Disconnected channel sessions</title>
</head>
<body style="font-family: Arial, sans-serif; color: #1f2937; line-height: 1.5;">
  <div style="background-color: #b91c1c; color: white; padding: 20px;">
    <h1 style="margin: 0; font-size: 22px;">Alert: channel sessions disconnected</h1>
    <p style="margin: 8px 0 0 0;">{{ tenant_name }} - connection monitoring</p>
  </div>
  <div style="padding: 20px;">
    <p style="margin-top: 0;">
      {{ sessions|length }} session(s) have been offline longer than expected:
    </p>
    <table style="width: 100%; border-collapse: collapse;">
      <thead>
        <tr style="background-color: #f3f4f6;">
          <th style="padding: 8px; text-align: left;">Session</th>
          <th style="padding: 8px; text-align: left;">Number</th>
          <th style="padding: 8px; text-align: left;">Status</th>
          <th style="padding: 8px; text-align: left;">Duration</th>
        </tr>
      </thead>
      <tbody>
        {%- for session in sessions %}
        <tr>
          <td style="padding: 8px; border-bottom: 1px solid #eee;">{{ session.display_name or session.instance_name }}</td>
          <td style="padding: 8px; border-bottom: 1px solid #eee;">{{ session.phone_number or "-" }}</td>
          <td style="padding: 8px; border-bottom: 1px solid #eee;">{{ session.status }}</td>
          <td style="padding: 8px; border-bottom: 1px solid #eee;">{{ session.duration }}</td>
        </tr>
        {%- endfor %}
      </tbody>
    </table>
    <p style="background-color: #fef3c7; padding: 12px; color: #92400e;">
      If a session does not come back on its own, open the channel settings
      to reconnect it or scan a new pairing code.
    </p>
    <p style="color: #6b7280; font-size: 12px;">
      You receive one alert per outage. Generated at {{ generated_at }}.
    </p>
  </div>
</body>
</html>
"""

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))
_template = _env.from_string(ALERT_TEMPLATE)


def outage_started(session: ChannelSessionModel) -> datetime | None:
    """Start of the displayed outage.

    Connecting sessions without a recorded start fall back to their last
    state change.
    """
    return ensure_utc(session.disconnected_since or session.updated_at)


def alerted_session(session: ChannelSessionModel, now: datetime) -> AlertedSession:
    started = outage_started(session)
    delta = (now - started) if started else timedelta(0)
    return AlertedSession(
        session_id=session.id,
        instance_name=session.instance_name,
        display_name=session.display_name,
        phone_number=session.phone_number,
        status=STATUS_LABELS.get(session.status, session.status),
        duration=format_duration(delta),
        duration_minutes=max(0, int(delta.total_seconds() // 60)),
    )


def sort_longest_first(sessions: list[AlertedSession]) -> list[AlertedSession]:
    return sorted(sessions, key=lambda s: (-s.duration_minutes, s.instance_name))


def render_alert(
    tenant_name: str | None,
    sessions: list[AlertedSession],
    now: datetime,
) -> tuple[str, str]:
    """Render the subject and HTML body for one tenant's alert."""
    ordered = sort_longest_first(sessions)
    name = tenant_name or "your account"
    subject = f"ALERT: {len(ordered)} channel session(s) disconnected for {name}"
    body = _template.render(
        tenant_name=name,
        sessions=ordered,
        generated_at=now.strftime("%Y-%m-%d %H:%M UTC"),
    )
    return subject, body
