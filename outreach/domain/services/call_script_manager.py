"""
Call Script Manager
Persona call scripts for outbound voice campaigns
"""
import logging
from typing import Dict, List, Optional

from jinja2 import BaseLoader, Environment
from pydantic import BaseModel, Field

from outreach.domain.models.contact_attempt import CampaignType
from outreach.domain.models.lead import Lead

logger = logging.getLogger(__name__)


class CallScript(BaseModel):
    """Rendered call script for one lead"""
    script_id: str
    campaign_type: CampaignType
    opening: str
    value_proposition: str
    objection_handling: Dict[str, str] = Field(default_factory=dict)
    closing_options: List[str] = Field(default_factory=list)
    follow_up_actions: List[str] = Field(default_factory=list)

    def full_text(self) -> str:
        """All spoken content, used for the compliance check."""
        parts = [self.opening, self.value_proposition]
        parts.extend(self.objection_handling.values())
        parts.extend(self.closing_options)
        return "\n".join(parts)


class CallScriptTemplate(BaseModel):
    campaign_type: CampaignType
    opening: str
    value_proposition: str
    objection_handling: Dict[str, str]
    closing_options: List[str]
    follow_up_actions: List[str]


class CallScriptManager:
    """
    Renders persona scripts (investment, partnership, demo) for a lead.

    Script ids are stable per campaign so the voice provider can map them
    to a configured assistant.
    """

    def __init__(self, agent_name: str = "RUNE", company_name: str = "Commertize"):
        self.agent_name = agent_name
        self.company_name = company_name
        self.env = Environment(loader=BaseLoader())
        self.templates: Dict[CampaignType, CallScriptTemplate] = {}
        self._load_default_templates()

    def _load_default_templates(self):
        self.templates[CampaignType.INVESTMENT] = CallScriptTemplate(
            campaign_type=CampaignType.INVESTMENT,
            opening=(
                "Hi {{ recipient_name }}, this is {{ agent_name }} calling on behalf of {{ company_name }}. "
                "We provide access to tokenized commercial real estate investments. Did I catch you at a good time?"
            ),
            value_proposition=(
                "I'll be brief. Institutional-quality real estate deals have traditionally been restricted "
                "to large players. {{ company_name }} tokenizes properties, which makes them accessible, "
                "transparent and tradable. That gives investors fractional access to high-value commercial deals "
                "with clear reporting."
            ),
            objection_handling={
                "not_interested": (
                    "I get that. Many investors said the same until they saw how tokenization allows "
                    "diversification into commercial real estate with lower capital requirements. "
                    "Would you like me to send a one-pager that explains how it works?"
                ),
                "no_time": (
                    "Completely fair. Most of our investor conversations take 15 minutes. Would you be open "
                    "to a short call next week?"
                ),
                "need_to_think": (
                    "Absolutely. I can send you our investor deck now and check in after you've had time "
                    "to look it over."
                ),
                "already_investing": (
                    "That's great, you clearly value diversification. Many of our clients hold traditional "
                    "investments and add commercial real estate for its monthly distributions."
                ),
            },
            closing_options=[
                "The best way to understand the opportunity is a quick demo. How does later this week look for a 20-minute overview?",
                "I can send you our investor deck today. Would you prefer a PDF or a link?",
                "If now isn't ideal, may I check back in a few weeks with updated opportunities?",
            ],
            follow_up_actions=[
                "Send investor deck",
                "Schedule 20-minute platform demo",
                "Follow up in 2-3 weeks with new opportunities",
                "Send market analysis for their area",
            ],
        )

        self.templates[CampaignType.PARTNERSHIP] = CallScriptTemplate(
            campaign_type=CampaignType.PARTNERSHIP,
            opening=(
                "Hi {{ recipient_name }}, this is {{ agent_name }} calling on behalf of {{ company_name }}. "
                "We work with commercial property owners like {{ recipient_company }} to create new financing "
                "options through tokenization. Did I catch you at a good time?"
            ),
            value_proposition=(
                "I'll keep this quick. With high interest rates and limited refinancing options, many owners "
                "struggle to unlock equity. {{ company_name }} tokenizes your property into digital shares that "
                "can be offered to a broad pool of investors, so you can raise capital without waiting on banks."
            ),
            objection_handling={
                "not_interested": (
                    "I understand. Many owners felt the same until tokenization gave them options when banks "
                    "would not refinance. Could I send you a short case study?"
                ),
                "no_time": "Totally fair. Would next week be better for a 15-minute call?",
                "need_to_think": (
                    "That's smart, it's a big decision. I'll send our property-owner guide and follow up next week."
                ),
                "complex_process": (
                    "We handle the whole tokenization process, from smart contract deployment to regulatory "
                    "filings, so you can focus on running the property."
                ),
            },
            closing_options=[
                "Would you be open to a 20-minute demo later this week?",
                "I can send you a case study right now. What's the best email to use?",
                "If now's not the right time, can I circle back in a few weeks?",
            ],
            follow_up_actions=[
                "Send property-owner case study",
                "Schedule 20-minute tokenization demo",
                "Send property-owner guide",
                "Follow up in 2-3 weeks if timing not right",
            ],
        )

        self.templates[CampaignType.DEMO] = CallScriptTemplate(
            campaign_type=CampaignType.DEMO,
            opening=(
                "Hi {{ recipient_name }}, this is {{ agent_name }} from {{ company_name }}. You recently showed "
                "interest in our commercial real estate tokenization platform. Do you have about 10 minutes "
                "for a quick walkthrough?"
            ),
            value_proposition=(
                "Each property on the platform has been vetted by our team and tokenized for fractional "
                "ownership. You can review tenant information and projected figures, and the minimum "
                "investment is $1,000."
            ),
            objection_handling={
                "too_complicated": (
                    "You pick a property, choose an amount and confirm. The platform handles the blockchain "
                    "side in the background."
                ),
                "security_concerns": (
                    "Ownership is recorded by smart contracts and every property has full legal documentation."
                ),
                "dont_understand_crypto": (
                    "You don't need any cryptocurrency. You can invest in US dollars from your bank account."
                ),
            },
            closing_options=[
                "Which of these properties interests you most? I can send you the full package.",
                "Would you like me to set up an account so you can explore at your own pace?",
            ],
            follow_up_actions=[
                "Send property investment packages",
                "Set up platform account",
                "Schedule follow-up call for additional questions",
            ],
        )

        logger.info(f"Loaded {len(self.templates)} call script templates")

    @staticmethod
    def script_id_for(campaign: CampaignType) -> str:
        return f"{campaign.value}_outreach"

    def _render(self, text: str, context: dict) -> str:
        return self.env.from_string(text).render(**context)

    def generate_script(self, lead: Lead, campaign: CampaignType) -> CallScript:
        """Render the persona script for a lead."""
        template = self.templates.get(campaign)
        if template is None:
            raise KeyError(f"No call script for campaign '{campaign}'")

        context = {
            "recipient_name": lead.name or "there",
            "recipient_company": lead.company or "your organization",
            "agent_name": self.agent_name,
            "company_name": self.company_name,
        }

        script = CallScript(
            script_id=self.script_id_for(campaign),
            campaign_type=campaign,
            opening=self._render(template.opening, context),
            value_proposition=self._render(template.value_proposition, context),
            objection_handling={
                key: self._render(value, context) for key, value in template.objection_handling.items()
            },
            closing_options=[self._render(option, context) for option in template.closing_options],
            follow_up_actions=list(template.follow_up_actions),
        )

        logger.debug(f"Generated {campaign.value} call script for lead {lead.id}")
        return script

    def list_campaigns(self) -> List[CampaignType]:
        return list(self.templates.keys())

    def get_template(self, campaign: CampaignType) -> Optional[CallScriptTemplate]:
        return self.templates.get(campaign)
