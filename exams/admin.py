from django.contrib import admin

from .models import Exam, Question, Option, ExamCategory


class OptionInline(admin.TabularInline):
    model = Option
    extra = 0


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ('id', 'exam', 'sequence', 'question_type', 'marks', 'randomize_options')
    list_filter = ('question_type', 'difficulty')
    inlines = [OptionInline]


admin.site.register(Exam)
admin.site.register(Option)
admin.site.register(ExamCategory)
