"""
Campaign Dispatcher.

Runs one broadcast: claims the campaign, resolves its segment, sends a
personalized message to each recipient under the rate limit, and records
per-recipient and aggregate progress as it goes.
"""

from dataclasses import dataclass
from typing import Any, Optional

from logging_config import get_logger
from repositories.campaign_repository import CampaignRepository
from repositories.contact_repository import ContactRepository
from repositories.conversation_repository import ConversationRepository
from repositories.message_repository import MessageRepository
from services.common.result import Result, ErrorCode
from services.enums import CampaignStatus, SenderType, DeliveryStatus, MessageType
from services.rate_limiter import FixedIntervalRateLimiter
from services.template_service import render
from services.whatsapp_api_client import SendResult, WhatsAppAPIClient
from utils.datetime_utils import utc_now

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    campaign_id: int
    total_recipients: int
    sent_count: int = 0
    failed_count: int = 0
    halted: bool = False
    execution_id: Optional[int] = None

    def to_dict(self):
        return {
            'campaign_id': self.campaign_id,
            'total_recipients': self.total_recipients,
            'sent_count': self.sent_count,
            'failed_count': self.failed_count,
            'halted': self.halted,
            'execution_id': self.execution_id,
        }


class CampaignDispatcher:
    """Executes campaign broadcasts"""

    def __init__(self, campaign_repository: CampaignRepository,
                 contact_repository: ContactRepository,
                 conversation_repository: ConversationRepository,
                 message_repository: MessageRepository,
                 whatsapp_client: WhatsAppAPIClient,
                 rate_limiter: FixedIntervalRateLimiter,
                 contact_lock=None):
        self.campaign_repository = campaign_repository
        self.contact_repository = contact_repository
        self.conversation_repository = conversation_repository
        self.message_repository = message_repository
        self.whatsapp_client = whatsapp_client
        self.rate_limiter = rate_limiter
        self.contact_lock = contact_lock

    def execute(self, campaign_id: int) -> Result[DispatchResult]:
        """
        Dispatch a campaign.

        Returns:
            Result with a DispatchResult, or a failure with code NOT_FOUND or
            ALREADY_RUNNING. Individual send failures are counted, never raised.
            If the run breaks down after the claim it fails with DISPATCH_ABORTED
            and the campaign is released from running.
        """
        campaign = self.campaign_repository.get_by_id(campaign_id)
        if campaign is None:
            return Result.failure(f"Campaign {campaign_id} not found", code=ErrorCode.NOT_FOUND)

        if campaign.status not in CampaignStatus.dispatchable():
            return Result.failure(
                f"Campaign {campaign_id} is {campaign.status} and cannot be dispatched",
                code=ErrorCode.ALREADY_RUNNING,
                metadata={'status': campaign.status},
            )

        claimed_from = campaign.status
        template = campaign.message_template
        target_tags = list(campaign.target_tags or [])

        if not self.campaign_repository.claim_for_dispatch(campaign_id):
            # Lost the race to a concurrent dispatch
            return Result.failure(
                f"Campaign {campaign_id} is already running",
                code=ErrorCode.ALREADY_RUNNING,
            )

        result = DispatchResult(campaign_id=campaign_id, total_recipients=0)
        try:
            self._run(campaign_id, template, target_tags, result)
        except Exception as e:
            logger.exception("Campaign dispatch aborted", campaign_id=campaign_id,
                             sent=result.sent_count, failed=result.failed_count)
            released_to = self._release(campaign_id, claimed_from, result)
            return Result.failure(
                f"Campaign {campaign_id} dispatch aborted: {e}",
                code=ErrorCode.DISPATCH_ABORTED,
                metadata={'status': released_to, **result.to_dict()},
            )
        return Result.success(result)

    def _run(self, campaign_id: int, template: str, target_tags, result: DispatchResult) -> None:
        recipients = self.contact_repository.find_segment(target_tags)
        result.total_recipients = len(recipients)

        execution = self.campaign_repository.create_execution(campaign_id, result.total_recipients)
        result.execution_id = execution.id
        self.campaign_repository.set_status(campaign_id, CampaignStatus.RUNNING.value,
                                            total_recipients=result.total_recipients)
        self.campaign_repository.commit()

        logger.info("Campaign dispatch started", campaign_id=campaign_id,
                    total_recipients=result.total_recipients, target_tags=target_tags)

        self.rate_limiter.reset()
        for contact in recipients:
            status = self.campaign_repository.get_status(campaign_id)
            if status != CampaignStatus.RUNNING.value:
                logger.warning("Campaign status changed mid-run, halting dispatch",
                               campaign_id=campaign_id, status=status,
                               processed=result.sent_count + result.failed_count)
                result.halted = True
                break

            self.rate_limiter.wait()
            self._dispatch_one(campaign_id, execution.id, template, contact, result)

        self._finish(campaign_id, execution.id, result)

    def _release(self, campaign_id: int, claimed_from: str, result: DispatchResult) -> Optional[str]:
        """
        Move an aborted run out of running. With nothing sent the campaign
        goes back to the status it was claimed from and can be dispatched
        again; after any send it becomes failed so nobody is messaged twice.
        """
        released_to = claimed_from if result.sent_count == 0 else CampaignStatus.FAILED.value
        try:
            self.campaign_repository.rollback()
            if result.execution_id is not None:
                self.campaign_repository.finish_execution(result.execution_id, 'failed')
            if not self.campaign_repository.transition_status(
                    campaign_id, [CampaignStatus.RUNNING.value], released_to):
                released_to = self.campaign_repository.get_status(campaign_id)
            self.campaign_repository.commit()
        except Exception:
            logger.exception("Could not release aborted campaign", campaign_id=campaign_id)
            self.campaign_repository.rollback()
            return CampaignStatus.RUNNING.value
        logger.warning("Aborted campaign released", campaign_id=campaign_id, status=released_to)
        return released_to

    def _dispatch_one(self, campaign_id: int, execution_id: int, template: str,
                      contact: Any, result: DispatchResult) -> None:
        contact_id = contact.id
        phone_number = contact.phone_number
        try:
            body = render(template, contact)
            send_result = self.whatsapp_client.send_text(phone_number, body)
        except Exception as e:
            logger.exception("Unexpected error sending campaign message",
                             campaign_id=campaign_id, contact_id=contact_id)
            body = None
            send_result = SendResult.failed(f"Unexpected error: {e}")

        try:
            self._record_progress(campaign_id, execution_id, contact_id, send_result)
        except Exception:
            # Progress for this recipient could not be stored; count it as failed
            logger.exception("Could not record campaign progress", campaign_id=campaign_id,
                             contact_id=contact_id, provider_message_id=send_result.message_id)
            self.campaign_repository.rollback()
            self.campaign_repository.increment_failed(campaign_id, execution_id)
            self.campaign_repository.commit()
            result.failed_count += 1
            return

        if not send_result.success:
            result.failed_count += 1
            logger.warning("Campaign message failed", campaign_id=campaign_id,
                           contact_id=contact_id, error=send_result.error)
            return

        result.sent_count += 1
        try:
            self._record_outbound(campaign_id, contact, body, send_result)
        except Exception:
            # The send is already counted; only the transcript entry is lost
            logger.exception("Could not record campaign message in conversation",
                             campaign_id=campaign_id, contact_id=contact_id)
            self.message_repository.rollback()

    def _record_progress(self, campaign_id: int, execution_id: int, contact_id: int,
                         send_result: SendResult) -> None:
        if send_result.success:
            self.campaign_repository.increment_sent(campaign_id, execution_id)
            self.campaign_repository.record_delivery(execution_id, campaign_id, contact_id,
                                                     success=True,
                                                     provider_message_id=send_result.message_id)
        else:
            self.campaign_repository.increment_failed(campaign_id, execution_id)
            self.campaign_repository.record_delivery(execution_id, campaign_id, contact_id,
                                                     success=False, error=send_result.error)
        self.campaign_repository.commit()

    def _record_outbound(self, campaign_id: int, contact: Any, body: str,
                         send_result: SendResult) -> None:
        if self.contact_lock is None:
            self._append_transcript(campaign_id, contact.id, body, send_result)
            return
        # Same lock as inbound intake, so both never create an open conversation at once
        with self.contact_lock.hold(contact.phone_number):
            self._append_transcript(campaign_id, contact.id, body, send_result)

    def _append_transcript(self, campaign_id: int, contact_id: int, body: str,
                           send_result: SendResult) -> None:
        now = utc_now()
        conversation = self.conversation_repository.find_or_create_open_for_contact(
            contact_id,
            last_message_at=now,
            last_message_from=SenderType.AGENT.value,
        )
        self.message_repository.create(
            conversation_id=conversation.id,
            sender_type=SenderType.AGENT.value,
            content=body,
            message_type=MessageType.TEXT.value,
            delivery_status=DeliveryStatus.SENT.value,
            provider_message_id=send_result.message_id,
            message_metadata={'campaign_id': campaign_id},
            created_at=now,
        )
        self.conversation_repository.touch(conversation, SenderType.AGENT.value, now)
        self.message_repository.commit()

    def _finish(self, campaign_id: int, execution_id: int, result: DispatchResult) -> None:
        if result.halted:
            self.campaign_repository.finish_execution(execution_id, 'halted')
        else:
            # Only complete a run that is still ours; never overwrite an external status change
            completed = self.campaign_repository.transition_status(
                campaign_id, [CampaignStatus.RUNNING.value], CampaignStatus.COMPLETED.value
            )
            if completed:
                self.campaign_repository.set_status(campaign_id, CampaignStatus.COMPLETED.value,
                                                    completed_at=utc_now())
            else:
                result.halted = True
            self.campaign_repository.finish_execution(execution_id, 'halted' if result.halted else 'completed')
        self.campaign_repository.commit()

        logger.info("Campaign dispatch finished", campaign_id=campaign_id,
                    sent=result.sent_count, failed=result.failed_count,
                    total=result.total_recipients, halted=result.halted)
