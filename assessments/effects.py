# examdesk_platform/assessments/effects.py
"""
Side effects run after a submission has been committed.

Every effect is independent: a failure is logged and the next effect still
runs. Nothing here can change or roll back the stored result.
"""
import logging

from notifications import realtime
from notifications.models import Notification
from notifications.services import create_notification, send_email, send_sms

from .leaderboard import build_leaderboards

logger = logging.getLogger(__name__)


def _summary(result):
    if result.is_published:
        outcome = "passed" if result.passed else "did not pass"
        return (
            f"You scored {result.obtained_marks} out of {result.total_marks} "
            f"({result.percentage}%, grade {result.grade}) and {outcome}."
        )
    return "Your exam was submitted. Results will be published later."


def notify_in_app(result):
    kind = Notification.Kind.EXAM_RESULT if result.is_published else Notification.Kind.EXAM_SUBMITTED
    create_notification(
        user=result.student,
        kind=kind,
        title=f"{result.exam.title}: submission received",
        message=_summary(result),
        link=f"/results/{result.pk}",
    )


def email_result(result):
    student = result.student
    if not student.email:
        return
    send_email(
        to_email=student.email,
        subject=f"Your result for {result.exam.title}",
        body=f"Dear {student.display_name},\n\n{_summary(result)}\n",
    )


def sms_result(result):
    phone = result.student.phone_number
    if not phone:
        return
    if result.is_published:
        message = f"{result.exam.title}: {'PASS' if result.passed else 'FAIL'} ({result.percentage}%)"
    else:
        message = f"{result.exam.title}: submitted, results pending."
    send_sms(phone, message)


def emit_submission_event(result):
    realtime.publish_event(realtime.EXAM_SUBMITTED, {
        'exam_id': result.exam_id,
        'user_id': result.student_id,
        'user_name': result.student.display_name,
        # Score stays private until the result is published
        'percentage': float(result.percentage) if result.is_published else None,
    })


def broadcast_leaderboard(result):
    # Rankings only count published results, so an unpublished submission
    # leaves the standings unchanged but is still broadcast
    realtime.publish_event(realtime.LEADERBOARD_UPDATE, build_leaderboards(current_user_id=result.student_id))


DEFAULT_EFFECTS = (
    notify_in_app,
    email_result,
    sms_result,
    emit_submission_event,
    broadcast_leaderboard,
)


def run_effects(result, effects=DEFAULT_EFFECTS):
    for effect in effects:
        try:
            effect(result)
        except Exception:
            logger.exception(
                "Post-submission effect %s failed for result=%s",
                getattr(effect, '__name__', repr(effect)), result.pk,
            )
