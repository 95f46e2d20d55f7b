"""
Email Template Manager
Manages outreach email templates with Jinja2 rendering

Campaign templates (investment, partnership, demo), the support auto-reply
and the internal weekly report. Every template ends with the unsubscribe
footer so rendered output always passes the unsubscribe compliance rule.
"""
import logging
from typing import Any, Dict, List, Optional

from jinja2 import BaseLoader, Environment
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class TemplateNotFoundError(KeyError):
    """Raised when rendering an unknown template name."""
    pass


class EmailTemplate(BaseModel):
    """Single email template definition."""
    name: str = Field(..., description="Template identifier")
    subject_template: str = Field(..., description="Jinja2 subject template")
    body_template: str = Field(..., description="Jinja2 plain text body template")
    body_html_template: str = Field(..., description="Jinja2 HTML body template")
    variables: List[str] = Field(default_factory=list, description="Variables the template reads")
    description: str = Field("", description="Template purpose description")
    is_marketing: bool = True


class RenderedEmail(BaseModel):
    """Rendered email ready for the compliance gate and sending."""
    subject: str
    body: str
    body_html: str
    template_name: str
    is_marketing: bool = True


_TEXT_FOOTER = """
--
{{ company_name }} | {{ support_email }}
To unsubscribe, visit {{ unsubscribe_url }}
or email mailto:{{ support_email }}?subject=unsubscribe"""

_HTML_FOOTER = """
<div style="margin-top: 32px; padding-top: 16px; border-top: 1px solid #ddd; font-size: 12px; color: #777;">
<p>&copy; {{ year }} {{ company_name }}. All rights reserved.</p>
{% if disclaimer %}<p>{{ disclaimer }}</p>{% endif %}
<p><a href="{{ unsubscribe_url }}" style="color: #bf8e01;">Unsubscribe</a> | <a href="{{ privacy_url }}" style="color: #bf8e01;">Privacy Policy</a></p>
</div>
</body>
</html>"""

_HTML_HEADER = """<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">"""

_INVESTMENT_DISCLAIMER = (
    "This email contains information about investment opportunities. "
    "All investments carry risk, including possible loss of principal. Please invest responsibly."
)

COMMON_VARIABLES = ["company_name", "support_email", "unsubscribe_url", "privacy_url", "year"]


class EmailTemplateManager:
    """
    Manages email templates and rendering.

    Text bodies render without escaping; HTML bodies autoescape lead-provided
    values.
    """

    def __init__(self):
        """Initialize template manager with default templates."""
        self.templates: Dict[str, EmailTemplate] = {}
        self.text_env = Environment(loader=BaseLoader())
        self.html_env = Environment(loader=BaseLoader(), autoescape=True)
        self._load_default_templates()

    def _load_default_templates(self):
        """Load default email templates."""

        self.templates["investment"] = EmailTemplate(
            name="investment",
            description="Cold outreach to prospective investors",
            subject_template="Exclusive Commercial Real Estate Investment Opportunities",
            body_template="""Dear {{ recipient_name }},

I'm reaching out from {{ company_name }} because we believe you would benefit from our commercial real estate tokenization platform.

With {{ company_name }} you can:
- Own fractional shares of institutional-grade commercial properties
- Receive monthly rental distributions
- Review every property through our vetting process
{% if recipient_company %}
Given {{ recipient_company }}'s involvement in the investment space, I think you'll appreciate the transparency tokenization brings to commercial real estate.
{% endif %}
I'd love to show you how it works in a 15-minute demo. Are you available for a brief call this week?

Best regards,
{{ sender_name }}
""" + _TEXT_FOOTER,
            body_html_template=_HTML_HEADER + """
<h1>Exclusive Investment Opportunity</h1>
<p>Dear {{ recipient_name }},</p>
<p>I'm reaching out from {{ company_name }} because we believe you would benefit from our commercial real estate tokenization platform.</p>
<ul>
<li><strong>Fractional ownership</strong> of institutional-grade commercial properties</li>
<li><strong>Monthly distributions</strong> of rental income</li>
<li><strong>Professional vetting</strong> of every property</li>
</ul>
{% if recipient_company %}<p>Given {{ recipient_company }}'s involvement in the investment space, I think you'll appreciate the transparency tokenization brings to commercial real estate.</p>{% endif %}
<p>I'd love to show you how it works in a 15-minute demo. Are you available for a brief call this week?</p>
<p>Best regards,<br>{{ sender_name }}</p>
""" + _HTML_FOOTER,
            variables=["recipient_name", "recipient_company", "sender_name"] + COMMON_VARIABLES,
        )

        self.templates["partnership"] = EmailTemplate(
            name="partnership",
            description="Outreach to property sponsors",
            subject_template="Partnership Opportunity - Tokenize Your Commercial Properties",
            body_template="""Dear {{ recipient_name }},

I'm reaching out from {{ company_name }} to discuss how {{ recipient_company or 'your organization' }} could raise capital by tokenizing commercial properties.

Partnership highlights:
- Access to our network of accredited investors
- You keep operational control of your property
- No upfront costs; we are paid when you raise capital
- Token launches typically take 30-45 days

I'd be glad to prepare a free tokenization analysis for one of your properties. Would you be available for a 30-minute call this week?

Best regards,
{{ sender_name }}
""" + _TEXT_FOOTER,
            body_html_template=_HTML_HEADER + """
<h1>Strategic Partnership Opportunity</h1>
<p>Dear {{ recipient_name }},</p>
<p>I'm reaching out from {{ company_name }} to discuss how {{ recipient_company or 'your organization' }} could raise capital by tokenizing commercial properties.</p>
<ul>
<li><strong>Investor access:</strong> our network of accredited investors</li>
<li><strong>Maintain control:</strong> you keep operational control of your property</li>
<li><strong>No upfront costs:</strong> we are paid when you raise capital</li>
<li><strong>Fast deployment:</strong> token launches typically take 30-45 days</li>
</ul>
<p>I'd be glad to prepare a free tokenization analysis for one of your properties. Would you be available for a 30-minute call this week?</p>
<p>Best regards,<br>{{ sender_name }}</p>
""" + _HTML_FOOTER,
            variables=["recipient_name", "recipient_company", "sender_name"] + COMMON_VARIABLES,
        )

        self.templates["demo"] = EmailTemplate(
            name="demo",
            description="Platform demo invitation",
            subject_template="See {{ company_name }} in Action - Schedule Your Demo",
            body_template="""Hi {{ recipient_name }},

In a 15-minute walkthrough we'll show you how to browse tokenized properties, invest from $1,000 and track your distributions.

Reply to this email with a time that works for you{% if recipient_company %}, or let us know who else at {{ recipient_company }} should join{% endif %}.

Best regards,
{{ sender_name }}
""" + _TEXT_FOOTER,
            body_html_template=_HTML_HEADER + """
<h1>See {{ company_name }} in Action</h1>
<p>Hi {{ recipient_name }},</p>
<p>In a 15-minute walkthrough we'll show you how to browse tokenized properties, invest from $1,000 and track your distributions.</p>
<p>Reply to this email with a time that works for you{% if recipient_company %}, or let us know who else at {{ recipient_company }} should join{% endif %}.</p>
<p>Best regards,<br>{{ sender_name }}</p>
""" + _HTML_FOOTER,
            variables=["recipient_name", "recipient_company", "sender_name"] + COMMON_VARIABLES,
        )

        self.templates["support_auto_reply"] = EmailTemplate(
            name="support_auto_reply",
            description="Automatic reply to an inbound support email",
            subject_template="Re: {{ original_subject or 'Your inquiry' }} [Ticket #{{ ticket_ref }}]",
            body_template="""Hi {{ recipient_name }},

{{ reply_body }}

Your ticket number is #{{ ticket_ref }}. Reply to this email to add details to your request.

The {{ company_name }} Team
""" + _TEXT_FOOTER,
            body_html_template=_HTML_HEADER + """
<p>Hi {{ recipient_name }},</p>
{% for paragraph in reply_body.split('\\n\\n') %}<p>{{ paragraph }}</p>
{% endfor %}
<p>Your ticket number is <strong>#{{ ticket_ref }}</strong>. Reply to this email to add details to your request.</p>
<p>The {{ company_name }} Team</p>
""" + _HTML_FOOTER,
            variables=["recipient_name", "original_subject", "ticket_ref", "reply_body"] + COMMON_VARIABLES,
            is_marketing=False,
        )

        self.templates["weekly_report"] = EmailTemplate(
            name="weekly_report",
            description="Internal weekly outreach summary",
            subject_template="Weekly Outreach Report: {{ report.id }}",
            body_template="""Weekly outreach report for {{ report.id }}

Leads: {{ report.leads_total }} total, {{ report.new_leads }} new
{% for status, count in report.leads_by_status.items() %}  {{ status }}: {{ count }}
{% endfor %}
Emails: {{ report.emails_sent }} sent, {{ report.emails_opened }} opened, {{ report.emails_clicked }} clicked
Calls: {{ report.calls_total }}
{% if call_stats and call_stats.total %}  conversion: {{ call_stats.conversion_rate }}%, average duration: {{ call_stats.average_duration }}s, follow-ups due: {{ call_stats.follow_ups_pending }}
{% endif %}{% for outcome, count in report.call_outcomes.items() %}  {{ outcome }}: {{ count }}
{% endfor %}
Tickets: {{ report.tickets_opened }} opened, {{ report.tickets_resolved }} resolved
Mean resolution time: {{ '%.1f'|format(report.mean_resolution_hours) ~ 'h' if report.mean_resolution_hours is not none else 'n/a' }}
""" + _TEXT_FOOTER,
            body_html_template=_HTML_HEADER + """
<h1>Weekly Outreach Report: {{ report.id }}</h1>
<table style="border-collapse: collapse; margin: 20px 0;">
<tr><td style="padding: 4px 0;"><strong>Leads</strong></td><td style="padding: 4px 16px;">{{ report.leads_total }} total, {{ report.new_leads }} new</td></tr>
{% for status, count in report.leads_by_status.items() %}<tr><td style="padding: 4px 0;">&nbsp;&nbsp;{{ status }}</td><td style="padding: 4px 16px;">{{ count }}</td></tr>
{% endfor %}<tr><td style="padding: 4px 0;"><strong>Emails</strong></td><td style="padding: 4px 16px;">{{ report.emails_sent }} sent, {{ report.emails_opened }} opened, {{ report.emails_clicked }} clicked</td></tr>
<tr><td style="padding: 4px 0;"><strong>Calls</strong></td><td style="padding: 4px 16px;">{{ report.calls_total }}{% if call_stats and call_stats.total %}, {{ call_stats.conversion_rate }}% converted, {{ call_stats.average_duration }}s average{% endif %}</td></tr>
{% for outcome, count in report.call_outcomes.items() %}<tr><td style="padding: 4px 0;">&nbsp;&nbsp;{{ outcome }}</td><td style="padding: 4px 16px;">{{ count }}</td></tr>
{% endfor %}<tr><td style="padding: 4px 0;"><strong>Tickets</strong></td><td style="padding: 4px 16px;">{{ report.tickets_opened }} opened, {{ report.tickets_resolved }} resolved</td></tr>
<tr><td style="padding: 4px 0;"><strong>Mean resolution</strong></td><td style="padding: 4px 16px;">{{ '%.1f'|format(report.mean_resolution_hours) ~ 'h' if report.mean_resolution_hours is not none else 'n/a' }}</td></tr>
</table>
""" + _HTML_FOOTER,
            variables=["report", "call_stats"] + COMMON_VARIABLES,
            is_marketing=False,
        )

        logger.info(f"Loaded {len(self.templates)} default email templates")

    def render_email(self, template_name: str, **context) -> RenderedEmail:
        """
        Render an email template with provided context.

        Args:
            template_name: Name of template to render
            **context: Variables to inject into template

        Raises:
            TemplateNotFoundError: If template not found
        """
        if template_name not in self.templates:
            available = ", ".join(self.templates.keys())
            raise TemplateNotFoundError(f"Template '{template_name}' not found. Available: {available}")

        template = self.templates[template_name]
        context.setdefault("disclaimer", _INVESTMENT_DISCLAIMER if template.is_marketing else None)

        subject = self.text_env.from_string(template.subject_template).render(**context).strip()
        body = self.text_env.from_string(template.body_template).render(**context)
        body_html = self.html_env.from_string(template.body_html_template).render(**context)

        logger.debug(f"Rendered email template '{template_name}' with {len(context)} variables")

        return RenderedEmail(
            subject=subject,
            body=body,
            body_html=body_html,
            template_name=template_name,
            is_marketing=template.is_marketing,
        )

    def add_template(self, template: EmailTemplate) -> None:
        """Add or update a template."""
        self.templates[template.name] = template
        logger.info(f"Added email template: {template.name}")

    def get_template(self, name: str) -> Optional[EmailTemplate]:
        return self.templates.get(name)

    def list_templates(self) -> List[str]:
        return list(self.templates.keys())

    def get_template_info(self, name: str) -> Optional[Dict[str, Any]]:
        """Get template metadata."""
        template = self.templates.get(name)
        if not template:
            return None

        return {
            "name": template.name,
            "description": template.description,
            "variables": template.variables,
            "is_marketing": template.is_marketing,
        }


# Singleton instance
_template_manager: Optional[EmailTemplateManager] = None


def get_email_template_manager() -> EmailTemplateManager:
    """Get or create EmailTemplateManager singleton."""
    global _template_manager
    if _template_manager is None:
        _template_manager = EmailTemplateManager()
    return _template_manager
