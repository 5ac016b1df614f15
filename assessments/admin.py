from django.contrib import admin

from .models import ExamAttempt, ExamAnswer, ExamResult


class ExamAnswerInline(admin.TabularInline):
    model = ExamAnswer
    extra = 0
    readonly_fields = ('resolved_option', 'is_answered', 'is_correct', 'marks_obtained')


@admin.register(ExamAttempt)
class ExamAttemptAdmin(admin.ModelAdmin):
    list_display = ('id', 'exam', 'student', 'attempt_number', 'status', 'start_time', 'end_time')
    list_filter = ('status',)
    inlines = [ExamAnswerInline]


@admin.register(ExamResult)
class ExamResultAdmin(admin.ModelAdmin):
    list_display = ('id', 'exam', 'student', 'percentage', 'grade', 'status', 'is_published', 'result_date')
    list_filter = ('status', 'is_published')
