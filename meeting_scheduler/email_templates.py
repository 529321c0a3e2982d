"""
MJML Email Templates
Meeting emails using MJML for responsive, cross-client compatibility
"""

from html import escape
from typing import Optional

# App theme colors - Indigo/Slate color scheme
THEME = {
    "primary": "#4f46e5",
    "primary_dark": "#4338ca",
    "primary_light": "#e0e7ff",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#10b981",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <!-- Main Content -->
        <mj-section background-color="#ffffff" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <!-- Footer -->
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              A calendar invite is attached to this email.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def meeting_details_section(
    title: str, when: str, location: Optional[str] = None, meeting_link: Optional[str] = None
) -> str:
    """Boxed summary of a meeting: title, time, location/link"""
    rows = f"""
        <strong>{escape(title)}</strong><br/>
        {escape(when)}
    """
    if location:
        rows += f"<br/>📍 {escape(location)}"
    if meeting_link:
        rows += f'<br/>🔗 <a href="{escape(meeting_link)}" style="color: {THEME["primary"]};">Join meeting</a>'

    return f"""
    <mj-text background-color="{THEME['primary_light']}" padding="16px" border-radius="8px">
      {rows}
    </mj-text>
    """


def rsvp_links_section(accept_url: str, tentative_url: str, decline_url: str) -> str:
    return f"""
    <mj-text padding="16px 0 0 0">
      Will you attend?
    </mj-text>
    <mj-text>
      <a href="{accept_url}" style="color: {THEME['success']}; font-weight: 600;">Accept</a>
      <span style="color: #cbd5e1; margin: 0 8px;">•</span>
      <a href="{tentative_url}" style="color: {THEME['warning']}; font-weight: 600;">Maybe</a>
      <span style="color: #cbd5e1; margin: 0 8px;">•</span>
      <a href="{decline_url}" style="color: {THEME['danger']}; font-weight: 600;">Decline</a>
    </mj-text>
    """


def meeting_confirmed_template(
    attendee_name: Optional[str],
    title: str,
    when: str,
    location: Optional[str] = None,
    meeting_link: Optional[str] = None,
    notes: Optional[str] = None,
) -> str:
    """Sent to someone who booked through a scheduling link"""
    greeting = f"Hi {escape(attendee_name)}," if attendee_name else "Hi,"
    notes_section = ""
    if notes:
        notes_section = f"""
        <mj-text color="{THEME['text_muted']}" font-size="14px">
          Your notes: {escape(notes)}
        </mj-text>
        """

    content = f"""
    <mj-text>{greeting}</mj-text>
    <mj-text>Your meeting is confirmed.</mj-text>
    {meeting_details_section(title, when, location, meeting_link)}
    {notes_section}
    """
    return get_base_template(
        title="Meeting Confirmed",
        preview_text=f"{title} - {when}",
        content_sections=content,
        cta_url=meeting_link,
        cta_label="Join Meeting" if meeting_link else None,
    )


def meeting_invitation_template(
    attendee_name: Optional[str],
    organizer_name: str,
    title: str,
    when: str,
    accept_url: str,
    tentative_url: str,
    decline_url: str,
    location: Optional[str] = None,
    meeting_link: Optional[str] = None,
    is_reminder: bool = False,
) -> str:
    """Invitation (or reminder) with signed RSVP links"""
    greeting = f"Hi {escape(attendee_name)}," if attendee_name else "Hi,"
    intro = (
        "This is a reminder about your upcoming meeting."
        if is_reminder
        else f"{escape(organizer_name)} has invited you to a meeting."
    )
    content = f"""
    <mj-text>{greeting}</mj-text>
    <mj-text>{intro}</mj-text>
    {meeting_details_section(title, when, location, meeting_link)}
    {rsvp_links_section(accept_url, tentative_url, decline_url)}
    """
    return get_base_template(
        title="Meeting Reminder" if is_reminder else "Meeting Invitation",
        preview_text=f"{title} - {when}",
        content_sections=content,
    )


def meeting_updated_template(
    attendee_name: Optional[str],
    title: str,
    when: str,
    previous_when: Optional[str] = None,
    location: Optional[str] = None,
    meeting_link: Optional[str] = None,
) -> str:
    """Sent to all attendees after a reschedule"""
    greeting = f"Hi {escape(attendee_name)}," if attendee_name else "Hi,"
    previous = ""
    if previous_when:
        previous = f"""
        <mj-text color="{THEME['text_muted']}" font-size="14px">
          <s>Previously: {escape(previous_when)}</s>
        </mj-text>
        """
    content = f"""
    <mj-text>{greeting}</mj-text>
    <mj-text>The time of your meeting has changed.</mj-text>
    {meeting_details_section(title, when, location, meeting_link)}
    {previous}
    """
    return get_base_template(
        title="Meeting Updated",
        preview_text=f"New time: {when}",
        content_sections=content,
    )


def meeting_cancelled_template(
    attendee_name: Optional[str], title: str, when: str, reason: Optional[str] = None
) -> str:
    greeting = f"Hi {escape(attendee_name)}," if attendee_name else "Hi,"
    reason_section = ""
    if reason:
        reason_section = f"<mj-text>Reason: {escape(reason)}</mj-text>"
    content = f"""
    <mj-text>{greeting}</mj-text>
    <mj-text>This meeting has been cancelled.</mj-text>
    {meeting_details_section(title, when)}
    {reason_section}
    """
    return get_base_template(
        title="Meeting Cancelled",
        preview_text=f"{title} was cancelled",
        content_sections=content,
    )


def new_booking_notification_template(
    owner_name: Optional[str],
    attendee_name: str,
    attendee_email: str,
    title: str,
    when: str,
    notes: Optional[str] = None,
) -> str:
    """Tells the link owner that someone booked a meeting"""
    greeting = f"Hi {escape(owner_name)}," if owner_name else "Hi,"
    notes_section = f"<mj-text>Notes: {escape(notes)}</mj-text>" if notes else ""
    content = f"""
    <mj-text>{greeting}</mj-text>
    <mj-text>
      <strong>{escape(attendee_name)}</strong> ({escape(attendee_email)}) booked a meeting with you.
    </mj-text>
    {meeting_details_section(title, when)}
    {notes_section}
    """
    return get_base_template(
        title="New Booking",
        preview_text=f"{attendee_name} booked {title}",
        content_sections=content,
    )
