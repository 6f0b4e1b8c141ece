import logging
from datetime import datetime

from .complaint import Actor, Complaint, Feedback, Status
from .errors import AlreadySubmitted, InvalidState, Unauthorized, ValidationError

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
MAX_COMMENT_LENGTH = 1000


def validate_rating(rating) -> int:
    # bool is an int subclass; True is not a rating
    if isinstance(rating, bool):
        raise ValidationError("Rating must be a whole number from 1 to 5")
    if isinstance(rating, float):
        if not rating.is_integer():
            raise ValidationError("Rating must be a whole number from 1 to 5")
        rating = int(rating)
    if not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(
            f"Rating must be a whole number from {MIN_RATING} to {MAX_RATING}"
        )
    return rating


def submit_feedback(
    complaint: Complaint,
    actor: Actor,
    rating,
    now: datetime,
    comment: str | None = None,
) -> Complaint:
    rating = validate_rating(rating)
    if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            f"Comment is limited to {MAX_COMMENT_LENGTH} characters"
        )

    if complaint.owner_id != actor.id:
        logger.warning(
            f"{actor.id} tried to give feedback on complaint {complaint.id}"
        )
        raise Unauthorized("Only the submitter can give feedback on a complaint")
    if complaint.feedback is not None:
        raise AlreadySubmitted(
            f"Feedback for complaint {complaint.id} was already submitted"
        )
    if complaint.status != Status.RESOLVED:
        raise InvalidState(
            current=complaint.status.value,
            action="submit feedback",
            message="You can only give feedback on resolved complaints",
        )

    feedback = Feedback(rating=rating, comment=comment or None, submitted_at=now)
    return complaint.model_copy(update={"feedback": feedback, "last_updated": now})
