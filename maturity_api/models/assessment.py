"""Assessment model definitions."""

import json
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from maturity_api.database import Base

SESSION_IN_PROGRESS = "in_progress"
SESSION_COMPLETED = "completed"
SESSION_ABANDONED = "abandoned"

SCORE_SUBDOMAIN = "subdomain"
SCORE_OVERALL = "overall"


class MaturityLevel(Base):
    """Score band used to label assessment results."""
    __tablename__ = "maturity_levels"

    level_number = Column(Integer, primary_key=True)
    level_name = Column(String, nullable=False)
    description_en = Column(Text)
    description_ar = Column(Text)
    score_range_min = Column(Float)
    score_range_max = Column(Float)
    color_code = Column(String)


class AssessmentCode(Base):
    """Single-use token that opens an assessment for an organization."""
    __tablename__ = "assessment_codes"

    code = Column(String, primary_key=True)
    organization_name = Column(String, nullable=False)
    intended_recipient = Column(String)
    assessment_type = Column(String, default="full")
    expires_at = Column(DateTime)
    is_used = Column(Boolean, default=False)
    usage_count = Column(Integer, default=0)
    question_list = Column(Text)
    created_by = Column(String)
    created_at = Column(DateTime, default=datetime.now)

    def questions(self) -> list[str]:
        """Return the snapshotted question ids.

        Older rows store a comma separated string instead of a JSON array.
        """
        raw = (self.question_list or "").strip()
        if not raw:
            return []
        if raw.startswith("["):
            return [str(question_id) for question_id in json.loads(raw)]
        return [question_id.strip() for question_id in raw.split(",") if question_id.strip()]

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or datetime.now())


class Participant(Base):
    """Person taking an assessment; not a staff account."""
    __tablename__ = "participants"

    id = Column(String, primary_key=True)
    name = Column(String)
    email = Column(String, index=True)
    organization = Column(String)
    organization_size = Column(String)
    industry = Column(String)
    country = Column(String)
    role_title = Column(String)
    selected_role_id = Column(String)
    created_at = Column(DateTime, default=datetime.now)


class AssessmentSession(Base):
    """One participant's run through the questions of a code."""
    __tablename__ = "assessment_sessions"

    id = Column(String, primary_key=True)
    participant_id = Column(String, ForeignKey("participants.id"), index=True)
    code = Column(String, ForeignKey("assessment_codes.code"), index=True)
    status = Column(String, default=SESSION_IN_PROGRESS)
    language_preference = Column(String, default="en")
    total_questions = Column(Integer, default=0)
    questions_answered = Column(Integer, default=0)
    completion_percentage = Column(Integer, default=0)
    session_start = Column(DateTime, default=datetime.now)
    session_end = Column(DateTime)


class AssessmentResponse(Base):
    """Answer to a single question within a session."""
    __tablename__ = "assessment_responses"
    __table_args__ = (UniqueConstraint("session_id", "question_id", name="uq_responses_session_question"),)

    id = Column(Integer, primary_key=True)
    session_id = Column(String, ForeignKey("assessment_sessions.id"), nullable=False, index=True)
    question_id = Column(String, nullable=False)
    selected_option = Column(String)
    score_value = Column(Integer, default=0)
    assessment_code = Column(String, index=True)
    answered_at = Column(DateTime, default=datetime.now)


def default_question_ids(count: int) -> list[str]:
    return [f"Q{number}" for number in range(1, count + 1)]


class SessionScore(Base):
    """Calculated score of a session for one subdomain, or overall."""
    __tablename__ = "session_scores"

    id = Column(Integer, primary_key=True)
    session_id = Column(String, ForeignKey("assessment_sessions.id"), nullable=False, index=True)
    subdomain_id = Column(Integer, ForeignKey("subdomains.id"))  # null on the overall row
    score_type = Column(String, nullable=False)
    raw_score = Column(Float)
    percentage_score = Column(Float)
    maturity_level = Column(String)
    questions_answered = Column(Integer, default=0)
    total_questions = Column(Integer, default=0)
    calculated_at = Column(DateTime, default=datetime.now)
