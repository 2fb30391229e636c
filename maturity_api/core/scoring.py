"""Maturity scoring for assessment sessions.

Each answered question carries a 1-5 score. "Not applicable" and "not sure"
answers are stored as 0 and never count towards a score. A session gets one
row per assessed subdomain plus a single overall row.
"""

import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from maturity_api.models.assessment import (
    SCORE_OVERALL,
    SCORE_SUBDOMAIN,
    AssessmentResponse,
    AssessmentSession,
    MaturityLevel,
    SessionScore,
)
from maturity_api.models.domain import Question

logger = logging.getLogger(__name__)

MAX_SCORE = 5

# (level number, name, min score, max score, colour)
DEFAULT_MATURITY_LEVELS = (
    (1, 'Initial', 1.0, 1.8, '#dc2626'),
    (2, 'Developing', 1.9, 2.6, '#ea580c'),
    (3, 'Defined', 2.7, 3.4, '#ca8a04'),
    (4, 'Advanced', 3.5, 4.2, '#16a34a'),
    (5, 'Optimized', 4.3, 5.0, '#2563eb'),
)


def level_bands(levels: list[MaturityLevel]) -> list[tuple[float, str]]:
    """Lower bounds and names, highest band first."""
    bands = [(level.score_range_min, level.level_name) for level in levels if level.score_range_min is not None]
    if not bands:
        bands = [(score_min, name) for _, name, score_min, _, _ in DEFAULT_MATURITY_LEVELS]
    return sorted(bands, reverse=True)


def maturity_level_for(raw_score: float, bands: list[tuple[float, str]]) -> str:
    for score_min, name in bands:
        if raw_score >= score_min:
            return name
    return bands[-1][1]


def build_score(
    session_id: str,
    subdomain_id: int | None,
    scores: list[int],
    total_questions: int,
    bands: list[tuple[float, str]],
    calculated_at: datetime,
) -> SessionScore:
    raw_score = sum(scores) / len(scores)
    return SessionScore(
        session_id=session_id,
        subdomain_id=subdomain_id,
        score_type=SCORE_OVERALL if subdomain_id is None else SCORE_SUBDOMAIN,
        raw_score=round(raw_score, 2),
        percentage_score=round(raw_score / MAX_SCORE * 100, 1),
        maturity_level=maturity_level_for(raw_score, bands),
        questions_answered=len(scores),
        total_questions=total_questions,
        calculated_at=calculated_at,
    )


def calculate_session_scores(db: Session, session: AssessmentSession) -> list[SessionScore]:
    """Replace the stored scores of a session. Does not commit.

    Returns an empty list, leaving earlier scores untouched, when the session
    has no scoreable answers.
    """
    rows = (
        db.query(Question.subdomain_id, AssessmentResponse.score_value)
        .join(Question, Question.id == AssessmentResponse.question_id)
        .filter(AssessmentResponse.session_id == session.id, AssessmentResponse.score_value > 0)
        .all()
    )
    if not rows:
        return []

    by_subdomain: dict[int, list[int]] = defaultdict(list)
    for subdomain_id, score in rows:
        if subdomain_id is not None:
            by_subdomain[subdomain_id].append(score)

    question_totals = dict(
        db.query(Question.subdomain_id, func.count(Question.id))
        .filter(Question.subdomain_id.in_(list(by_subdomain)))
        .group_by(Question.subdomain_id)
        .all()
    )
    bands = level_bands(db.query(MaturityLevel).all())
    now = datetime.now()

    scores = [
        build_score(session.id, subdomain_id, values, question_totals.get(subdomain_id, len(values)), bands, now)
        for subdomain_id, values in sorted(by_subdomain.items())
    ]
    scores.append(build_score(
        session.id,
        None,
        [score for _, score in rows],
        session.total_questions or len(rows),
        bands,
        now,
    ))

    for stale in db.query(SessionScore).filter(SessionScore.session_id == session.id).all():
        db.delete(stale)
    db.flush()
    db.add_all(scores)
    db.flush()

    logger.info('Calculated %d subdomain scores for session %s', len(scores) - 1, session.id)
    return scores
