# crm_database.py

from extensions import db
from utils.datetime_utils import utc_now


class Contact(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    phone_number = db.Column(db.String(32), unique=True, nullable=False)  # E.164 digits, no '+'
    name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(120), nullable=True)
    company = db.Column(db.String(200), nullable=True)
    source = db.Column(db.String(50), nullable=True)  # 'whatsapp', 'import', 'manual'
    contact_metadata = db.Column(db.JSON, nullable=True)  # For flexible data storage
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    tags = db.relationship('ContactTag', backref='contact', lazy=True, cascade="all, delete-orphan")
    conversations = db.relationship('Conversation', backref='contact', lazy=True)

    @property
    def tag_names(self):
        return sorted(t.tag for t in self.tags)

    def to_payload(self):
        """Serializable view sent to external automation targets"""
        return {
            'id': self.id,
            'phone_number': self.phone_number,
            'name': self.name,
            'email': self.email,
            'company': self.company,
            'tags': self.tag_names,
            'metadata': self.contact_metadata or {},
        }


class ContactTag(db.Model):
    __tablename__ = 'contact_tag'
    __table_args__ = (db.UniqueConstraint('contact_id', 'tag', name='uq_contact_tag'),)

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, db.ForeignKey('contact.id'), nullable=False, index=True)
    tag = db.Column(db.String(100), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utc_now)


class CustomerJourney(db.Model):
    __tablename__ = 'customer_journey'

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, db.ForeignKey('contact.id'), nullable=False, unique=True)
    stage = db.Column(db.String(30), default='awareness')  # 'awareness', 'consideration', 'decision', 'retention'
    score = db.Column(db.Integer, default=0)
    engagement_level = db.Column(db.String(20), default='low')  # 'low', 'medium', 'high'
    touchpoints = db.Column(db.JSON, nullable=False, default=list)  # Append-only
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)


class Conversation(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, db.ForeignKey('contact.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='active')  # 'active', 'ai_handled', 'agent_assigned', 'closed'

    last_message_at = db.Column(db.DateTime, nullable=True)
    last_message_from = db.Column(db.String(20), nullable=True)  # 'customer', 'agent', 'ai'

    # Handover state
    assigned_agent_id = db.Column(db.Integer, nullable=True)
    handover_reason = db.Column(db.String(50), nullable=True)  # 'low_confidence'
    ai_confidence_score = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    messages = db.relationship('Message', backref='conversation', lazy=True,
                               order_by='Message.created_at', cascade="all, delete-orphan")

    def to_payload(self):
        return {
            'id': self.id,
            'contact_id': self.contact_id,
            'status': self.status,
            'last_message_from': self.last_message_from,
            'handover_reason': self.handover_reason,
        }


class Message(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('conversation.id'), nullable=False, index=True)
    sender_type = db.Column(db.String(20), nullable=False)  # 'customer', 'agent', 'ai'
    content = db.Column(db.Text, nullable=True)
    message_type = db.Column(db.String(20), default='text')
    delivery_status = db.Column(db.String(20), nullable=True)  # 'sent', 'delivered', 'read', 'failed'
    provider_message_id = db.Column(db.String(150), nullable=True, index=True)
    message_metadata = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now, index=True)


class ConversationAnalytics(db.Model):
    __tablename__ = 'conversation_analytics'

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('conversation.id'), nullable=False, index=True)
    message_id = db.Column(db.Integer, db.ForeignKey('message.id'), nullable=True)
    sentiment_score = db.Column(db.Float, nullable=True)
    intent_detected = db.Column(db.JSON, nullable=True)
    topics_discussed = db.Column(db.JSON, nullable=True)
    insights = db.Column(db.JSON, nullable=True)  # Full classification
    analyzed_at = db.Column(db.DateTime, default=utc_now)


class Trigger(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    event_type = db.Column(db.String(50), nullable=False, default='message_received')
    conditions = db.Column(db.JSON, nullable=False)  # {"match": "all"|"any", "rules": [...]}
    action = db.Column(db.JSON, nullable=False)  # {"kind": ..., "params": {...}}
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    execution_count = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    def to_payload(self):
        return {
            'id': self.id,
            'name': self.name,
            'event_type': self.event_type,
            'execution_count': self.execution_count,
        }


class TriggerExecution(db.Model):
    __tablename__ = 'trigger_execution'

    id = db.Column(db.Integer, primary_key=True)
    trigger_id = db.Column(db.Integer, db.ForeignKey('trigger.id'), nullable=False, index=True)
    contact_id = db.Column(db.Integer, db.ForeignKey('contact.id'), nullable=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('conversation.id'), nullable=True)
    success = db.Column(db.Boolean, nullable=False)
    error = db.Column(db.Text, nullable=True)
    executed_at = db.Column(db.DateTime, default=utc_now)


class Campaign(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    message_template = db.Column(db.Text, nullable=False)
    target_tags = db.Column(db.JSON, nullable=False, default=list)  # Empty = all contacts
    scheduled_at = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='draft')  # 'draft', 'scheduled', 'running', 'paused', 'completed', 'failed'

    total_recipients = db.Column(db.Integer, default=0, nullable=False)
    sent_count = db.Column(db.Integer, default=0, nullable=False)
    failed_count = db.Column(db.Integer, default=0, nullable=False)

    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    executions = db.relationship('CampaignExecution', backref='campaign', lazy=True)

    def to_payload(self):
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'target_tags': list(self.target_tags or []),
            'scheduled_at': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'total_recipients': self.total_recipients,
            'sent_count': self.sent_count,
            'failed_count': self.failed_count,
        }


class CampaignExecution(db.Model):
    __tablename__ = 'campaign_execution'

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaign.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='running')  # 'running', 'completed', 'halted', 'failed'
    total_recipients = db.Column(db.Integer, default=0, nullable=False)
    sent_count = db.Column(db.Integer, default=0, nullable=False)
    failed_count = db.Column(db.Integer, default=0, nullable=False)
    started_at = db.Column(db.DateTime, default=utc_now)
    completed_at = db.Column(db.DateTime, nullable=True)

    deliveries = db.relationship('CampaignDelivery', backref='execution', lazy=True)


class CampaignDelivery(db.Model):
    __tablename__ = 'campaign_delivery'

    id = db.Column(db.Integer, primary_key=True)
    execution_id = db.Column(db.Integer, db.ForeignKey('campaign_execution.id'), nullable=False, index=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaign.id'), nullable=False)
    contact_id = db.Column(db.Integer, db.ForeignKey('contact.id'), nullable=False)
    success = db.Column(db.Boolean, nullable=False)
    provider_message_id = db.Column(db.String(150), nullable=True)
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now)


class FollowUpRule(db.Model):
    __tablename__ = 'follow_up_rule'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    trigger_condition = db.Column(db.String(30), nullable=False, default='inactivity')
    inactivity_hours = db.Column(db.Integer, nullable=False, default=72)
    message_template = db.Column(db.Text, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def to_payload(self):
        return {
            'id': self.id,
            'name': self.name,
            'trigger_condition': self.trigger_condition,
            'inactivity_hours': self.inactivity_hours,
            'message_template': self.message_template,
            'is_active': self.is_active,
        }
