"""
Tests for Email Templates and Call Scripts
"""
from datetime import datetime, timezone

import pytest

from outreach.domain.models.contact_attempt import CampaignType
from outreach.domain.models.dispatch import OutboundMessage
from outreach.domain.models.contact_attempt import ContactChannel
from outreach.domain.models.lead import Lead
from outreach.domain.services.call_script_manager import CallScriptManager
from outreach.domain.services.compliance_gate import ComplianceGate
from outreach.domain.services.email_template_manager import (
    EmailTemplate,
    EmailTemplateManager,
    TemplateNotFoundError,
    get_email_template_manager,
)

FIXED_NOW = datetime(2024, 6, 5, 16, 0, tzinfo=timezone.utc)


def _context(**extra):
    context = {
        "company_name": "Commertize",
        "support_email": "support@commertize.com",
        "unsubscribe_url": "https://commertize.com/unsubscribe?email=a%40example.com",
        "privacy_url": "https://commertize.com/privacy",
        "year": 2024,
        "sender_name": "The Commertize Team",
        "recipient_name": "Jane",
        "recipient_company": "Acme Capital",
    }
    context.update(extra)
    return context


class TestEmailTemplateManager:
    """Tests for template loading and rendering"""

    def test_default_templates_loaded(self):
        """Campaign, auto-reply and report templates are present"""
        manager = EmailTemplateManager()
        for name in ("investment", "partnership", "demo", "support_auto_reply", "weekly_report"):
            assert name in manager.list_templates()

    def test_singleton(self):
        """get_email_template_manager returns one instance"""
        assert get_email_template_manager() is get_email_template_manager()

    def test_render_investment(self):
        """Rendering fills recipient variables"""
        rendered = EmailTemplateManager().render_email("investment", **_context())
        assert "Dear Jane" in rendered.body
        assert "Acme Capital" in rendered.body_html
        assert rendered.is_marketing

    @pytest.mark.parametrize("campaign", list(CampaignType))
    def test_campaign_emails_pass_unsubscribe_rule(self, campaign):
        """Every campaign template carries the unsubscribe footer"""
        rendered = EmailTemplateManager().render_email(campaign.value, **_context())
        message = OutboundMessage(
            channel=ContactChannel.EMAIL,
            recipient_email="a@example.com",
            subject=rendered.subject,
            html=rendered.body_html,
            text=rendered.body,
            is_marketing=False,
        )
        assert ComplianceGate().validate(message, FIXED_NOW) == []

    def test_html_escapes_lead_values(self):
        """Lead-provided values are escaped in HTML"""
        rendered = EmailTemplateManager().render_email(
            "investment", **_context(recipient_name="<script>x</script>")
        )
        assert "<script>x</script>" not in rendered.body_html
        assert "&lt;script&gt;" in rendered.body_html

    def test_auto_reply_is_transactional(self):
        """The support auto-reply is not marketing"""
        rendered = EmailTemplateManager().render_email(
            "support_auto_reply",
            **_context(original_subject="Question", ticket_ref="ABCD1234", reply_body="We got it."),
        )
        assert not rendered.is_marketing
        assert "ABCD1234" in rendered.body
        assert "We got it." in rendered.body

    def test_unknown_template(self):
        """Unknown names raise TemplateNotFoundError"""
        with pytest.raises(TemplateNotFoundError):
            EmailTemplateManager().render_email("missing")

    def test_add_template(self):
        """Custom templates can be registered"""
        manager = EmailTemplateManager()
        manager.add_template(EmailTemplate(
            name="custom",
            subject_template="Hi {{ recipient_name }}",
            body_template="Body",
            body_html_template="<p>Body</p>",
        ))
        assert manager.render_email("custom", recipient_name="Jo").subject == "Hi Jo"
        assert manager.get_template_info("custom")["is_marketing"] is True


class TestCallScriptManager:
    """Tests for persona call scripts"""

    def test_script_ids_are_stable(self):
        """Script id is derived from the campaign"""
        assert CallScriptManager.script_id_for(CampaignType.INVESTMENT) == "investment_outreach"

    @pytest.mark.parametrize("campaign", list(CampaignType))
    def test_generate_script(self, campaign):
        """Each campaign renders a full script for the lead"""
        lead = Lead(email="a@example.com", name="Jane", company="Acme Capital", phone="+15550001111")
        script = CallScriptManager().generate_script(lead, campaign)

        assert script.campaign_type == campaign
        assert "Jane" in script.opening
        assert "{{" not in script.full_text()
        assert script.closing_options
        assert script.follow_up_actions

    def test_scripts_contain_no_guarantees(self):
        """No persona script trips the guaranteed-returns rule"""
        manager = CallScriptManager()
        lead = Lead(email="a@example.com", name="Jane")
        for campaign in manager.list_campaigns():
            text = manager.generate_script(lead, campaign).full_text().lower()
            assert "guaranteed return" not in text
            assert "risk-free investment" not in text
