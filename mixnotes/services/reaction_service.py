import logging
from datetime import datetime

from sqlalchemy.orm import Session

from mixnotes.models import User, Comment, CommentReaction, ReactionType, Capability
from .errors import ValidationError
from .comment_service import CommentService

logger = logging.getLogger(__name__)


def parse_reaction_type(value) -> ReactionType:
    if value is None or value == "":
        raise ValidationError("Please provide a reaction type")
    try:
        return ReactionType(value)
    except ValueError:
        allowed = ", ".join(r.value for r in ReactionType)
        raise ValidationError(f"Invalid reaction type '{value}'; expected one of: {allowed}")


class ReactionService:
    """
    Toggles (user, type) reactions on comments.
    Reacting twice with the same type takes the reaction back.
    """

    def __init__(self, db: Session):
        self.db = db
        self.comments = CommentService(db)

    def toggle(self, comment_id: int, user: User, reaction_type) -> Comment:
        """
        Add the reaction if absent, remove it if present

        Args:
            comment_id: ID of the comment
            user: Reacting user (needs view access)
            reaction_type: like, dislike, agree or disagree

        Returns:
            Comment with its updated reactions
        """
        reaction_type = parse_reaction_type(reaction_type)
        comment = self.comments.get_comment(comment_id)

        track = self.comments.tracks.get_track(comment.track_id)
        self.comments.permissions.require(user, track.project, Capability.VIEW, "react to this comment")

        existing = [
            reaction for reaction in comment.reactions
            if reaction.user_id == user.id and reaction.type == reaction_type
        ]

        if existing:
            for reaction in existing:
                comment.reactions.remove(reaction)
            logger.info(f"User {user.id} removed '{reaction_type.value}' from comment {comment.id}")
        else:
            comment.reactions.append(CommentReaction(
                user_id=user.id,
                type=reaction_type,
                created_at=datetime.utcnow()
            ))
            logger.info(f"User {user.id} reacted '{reaction_type.value}' to comment {comment.id}")

        self.db.commit()
        self.db.refresh(comment)
        return comment
