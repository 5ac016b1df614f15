# examdesk_platform/assessments/leaderboard.py
from datetime import timedelta
from decimal import Decimal

from django.db.models import Avg, Count, Sum
from django.utils import timezone

from .models import ExamResult

LEADERBOARD_SIZE = 50

PERIODS = {
    'weekly': timedelta(days=7),
    'monthly': timedelta(days=30),
    'all_time': None,
}


def _display_name(row):
    full_name = f"{row['student__first_name']} {row['student__last_name']}".strip()
    if full_name:
        return full_name
    return (row['student__email'] or '').split('@')[0]


def build_rankings(period='all_time', current_user_id=None, now=None, limit=LEADERBOARD_SIZE):
    """
    Rank students by the sum of their obtained marks over published results
    in the period. Ties are broken by average percentage, then user id.
    """
    if period not in PERIODS:
        raise ValueError(f"Unknown leaderboard period: {period}")

    queryset = ExamResult.objects.filter(is_published=True)
    window = PERIODS[period]
    if window is not None:
        queryset = queryset.filter(result_date__gte=(now or timezone.now()) - window)

    rows = (
        queryset
        .values('student_id', 'student__first_name', 'student__last_name', 'student__email')
        .annotate(
            score=Sum('obtained_marks'),
            exams_taken=Count('exam_id', distinct=True),
            average_percentage=Avg('percentage'),
        )
        .order_by('-score', '-average_percentage', 'student_id')[:limit]
    )

    rankings = []
    for rank, row in enumerate(rows, start=1):
        average = row['average_percentage'] or 0
        rankings.append({
            'rank': rank,
            'user_id': row['student_id'],
            'full_name': _display_name(row),
            'score': float(row['score'] or 0),
            'exams_taken': row['exams_taken'],
            'average_percentage': float(round(Decimal(str(average)), 2)),
            'is_current_user': row['student_id'] == current_user_id,
        })
    return rankings


def build_leaderboards(current_user_id=None, now=None):
    now = now or timezone.now()
    return {period: build_rankings(period, current_user_id=current_user_id, now=now) for period in PERIODS}
