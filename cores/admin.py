from django.contrib import admin

from .models import PlatformSetting, AuditLog

admin.site.register(PlatformSetting)
admin.site.register(AuditLog)
