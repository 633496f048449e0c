from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import api_views

router = DefaultRouter()
# the web client calls paths without a trailing slash
router.trailing_slash = '/?'
router.register(r'outpass', api_views.OutpassViewSet, basename='outpass')
router.register(r'student', api_views.StudentViewSet, basename='student')
router.register(r'faculty', api_views.FacultyViewSet, basename='faculty')
router.register(r'hod/outpass', api_views.HodOutpassViewSet, basename='hod-outpass')
router.register(r'hod', api_views.HodViewSet, basename='hod')
router.register(r'security/gatepasses', api_views.GatepassViewSet, basename='gatepass')
router.register(r'admin/users', api_views.UserManagementViewSet, basename='admin-users')
router.register(r'admin/audit-logs', api_views.AuditLogViewSet, basename='audit-logs')
router.register(r'admin/settings', api_views.GlobalSettingsViewSet, basename='global-settings')
router.register(r'admin/departments', api_views.DepartmentViewSet, basename='departments')
router.register(r'admin/classes', api_views.StudentClassViewSet, basename='classes')
router.register(r'admin', api_views.AdminViewSet, basename='admin')

urlpatterns = [
    path('', include(router.urls)),
    path('auth/login', api_views.CustomAuthToken.as_view(), name='api_token_auth'),
    path('auth/logout', api_views.LogoutView.as_view(), name='api_logout'),
    path('auth/me', api_views.MeView.as_view(), name='api_me'),
]
