"""
FollowUpRuleRepository - Data access layer for inactivity follow-up rules
"""

from typing import List
from repositories.base_repository import BaseRepository
from crm_database import FollowUpRule
from services.enums import FollowUpCondition


class FollowUpRuleRepository(BaseRepository[FollowUpRule]):
    """Repository for FollowUpRule data access"""

    def __init__(self, session):
        super().__init__(session, FollowUpRule)

    def get_all(self) -> List[FollowUpRule]:
        return self.session.query(FollowUpRule)\
            .order_by(FollowUpRule.inactivity_hours.asc(), FollowUpRule.id.asc())\
            .all()

    def get_active_inactivity_rules(self) -> List[FollowUpRule]:
        """Active inactivity rules, shortest wait first"""
        return self.session.query(FollowUpRule)\
            .filter(FollowUpRule.is_active.is_(True))\
            .filter(FollowUpRule.trigger_condition == FollowUpCondition.INACTIVITY.value)\
            .order_by(FollowUpRule.inactivity_hours.asc(), FollowUpRule.id.asc())\
            .all()
