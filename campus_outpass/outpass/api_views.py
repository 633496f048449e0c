import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import update_last_login
from django.db.models import Q
from django.http import Http404
from django.utils import timezone
from rest_framework import viewsets, status
from rest_framework.authtoken.models import Token
from rest_framework.authtoken.views import ObtainAuthToken
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import (
    Department, StudentClass, CustomUser, UserRole, StudentProfile,
    OutpassRequest, Gatepass, AuditLog, GlobalSettings,
)
from .serializers import (
    LoginSerializer, user_payload, application_view, contact,
    OutpassSerializer, StaffOutpassSerializer, GatepassSerializer, StudentProfileSerializer,
    CustomUserSerializer, UserManagementSerializer, AuditLogSerializer, GlobalSettingsSerializer,
    DepartmentSerializer, StudentClassSerializer,
)
from .permissions import IsStudent, IsFaculty, IsHod, IsSecurity, IsAdminRole, get_role, is_admin
from .exceptions import MaintenanceMode
from .global_settings import get_global_setting, get_int_setting, is_maintenance_mode, seed_global_settings
from .classification import normalize_category, attendance_status, student_score
from .listing import (
    parse_bool, page_params, paginate, search_outpasses, sort_outpasses,
    filter_by_period, outcome_summary,
)
from .health_checks import check_database, check_email, check_storage, get_server_stats
from .signals import client_ip
from . import exports
from . import workflow

logger = logging.getLogger(__name__)

OUTPASS_RELATED = ('student', 'student__student_profile', 'department', 'student_class',
                   'faculty_approver', 'hod_approver', 'parent_verified_by')


# --- HELPERS: scoping ---
def outpasses():
    return OutpassRequest.objects.select_related(*OUTPASS_RELATED).prefetch_related('status_updates__actor')


def my_class_ids(user):
    return list(StudentClass.objects.filter(Q(class_teacher=user) | Q(mentors=user)).values_list('id', flat=True).distinct())


def faculty_scope(user):
    condition = Q(student_class_id__in=my_class_ids(user))
    if user.department_id:
        condition |= Q(department_id=user.department_id)
    return outpasses().filter(condition)


def hod_scope(user):
    if not user.department_id:
        return outpasses().none()
    return outpasses().filter(department_id=user.department_id)


def current_outpass(student):
    mine = outpasses().filter(student=student)
    active = mine.filter(status__in=OutpassRequest.ACTIVE_STATUSES).order_by('-created_at').first()
    if active:
        return active
    return mine.filter(
        status=OutpassRequest.APPROVED,
        gatepass__returned_at__isnull=True,
        gatepass__valid_until__date__gte=timezone.localdate(),
    ).order_by('-created_at').first()


def can_view_outpass(user, outpass):
    if outpass.student_id == user.pk or is_admin(user):
        return True
    if get_role(user) == UserRole.SECURITY:
        return True
    return workflow.can_faculty_act(user, outpass) or workflow.can_hod_act(user, outpass)


def approval_rate(approved, rejected):
    decided = approved + rejected
    return round(approved * 100 / decided, 1) if decided else 0


def average_hours(pairs):
    deltas = [(end - start).total_seconds() for start, end in pairs if start and end]
    if not deltas:
        return 0
    return round(sum(deltas) / len(deltas) / 3600, 1)


# --- AUTH ---
class CustomAuthToken(ObtainAuthToken):
    serializer_class = LoginSerializer

    def post(self, request, *args, **kwargs):
        serializer = self.serializer_class(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['user']

        # Maintenance Mode Check
        if is_maintenance_mode() and not is_admin(user):
            logger.info("Login refused for %s: maintenance mode", user.email)
            raise MaintenanceMode()

        token, created = Token.objects.get_or_create(user=user)
        update_last_login(None, user)
        AuditLog.objects.create(user=user, action="User Login", target="API", ip_address=client_ip(request))
        logger.info("User %s logged in", user.email)

        payload = user_payload(user)
        return Response({'success': True, 'token': token.key, **payload, 'user': payload})


class LogoutView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        AuditLog.objects.create(user=request.user, action="User Logout", target="API", ip_address=client_ip(request))
        Token.objects.filter(user=request.user).delete()
        return Response({'success': True, 'message': 'Logged out successfully'})


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({'success': True, 'user': user_payload(request.user)})


# --- OUTPASS ---
class OutpassViewSet(viewsets.GenericViewSet):
    """
    Student apply/current/history/cancel, the faculty queue and decisions,
    and the single-request view shared by every role allowed to see it.
    """
    queryset = OutpassRequest.objects.all()
    serializer_class = OutpassSerializer
    permission_classes = [IsAuthenticated]

    def get_permissions(self):
        if self.action in ['apply', 'current', 'history', 'cancel']:
            return [IsAuthenticated(), IsStudent()]
        if self.action in ['pending', 'faculty_approve', 'parent_verification']:
            return [IsAuthenticated(), IsFaculty()]
        return [IsAuthenticated()]

    def _visible(self, pk):
        outpass = workflow.get_outpass(pk, outpasses())
        if not can_view_outpass(self.request.user, outpass):
            raise Http404('Outpass request not found.')
        return outpass

    def retrieve(self, request, pk=None):
        outpass = self._visible(pk)
        serializer_class = OutpassSerializer if outpass.student_id == request.user.pk else StaffOutpassSerializer
        return Response({'success': True, 'data': serializer_class(outpass, context={'request': request}).data})

    @action(detail=False, methods=['post'], parser_classes=[MultiPartParser, FormParser, JSONParser])
    def apply(self, request):
        outpass = workflow.submit_outpass(request.user, request.data, request.FILES, client_ip(request))
        data = OutpassSerializer(outpass, context={'request': request}).data
        return Response(
            {'success': True, 'message': 'Outpass request submitted successfully.', 'data': data},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=['get'])
    def current(self, request):
        outpass = current_outpass(request.user)
        if outpass is None:
            raise Http404('No active outpass request.')
        return Response({'success': True, 'data': OutpassSerializer(outpass, context={'request': request}).data})

    @action(detail=False, methods=['get'])
    def history(self, request):
        params = request.query_params
        base = filter_by_period(outpasses().filter(student=request.user), params)
        summary = outcome_summary(base)

        status_filter = params.get('status', 'all')
        queryset = base
        if status_filter in (OutpassRequest.APPROVED, OutpassRequest.REJECTED, OutpassRequest.CANCELLED):
            queryset = queryset.filter(status=status_filter)
        queryset = sort_outpasses(queryset, params.get('sort'))

        page, limit = page_params(params)
        records, pagination = paginate(queryset, page, limit)
        return Response({
            'success': True,
            'data': {
                'outpasses': OutpassSerializer(records, many=True, context={'request': request}).data,
                'summary': summary,
                'pagination': pagination,
            },
        })

    @action(detail=True, methods=['put', 'post'])
    def cancel(self, request, pk=None):
        outpass = workflow.cancel_outpass(request.user, pk, client_ip(request))
        return Response({
            'success': True,
            'message': 'Outpass request cancelled.',
            'data': OutpassSerializer(outpass, context={'request': request}).data,
        })

    @action(detail=True, methods=['get'])
    def gatepass(self, request, pk=None):
        outpass = self._visible(pk)
        if not Gatepass.objects.filter(outpass=outpass).exists():
            raise Http404('No gatepass has been issued for this request.')
        return exports.gatepass_pdf(outpass, get_global_setting('system_name', 'Campus Outpass Portal'))

    @action(detail=False, methods=['get'])
    def pending(self, request):
        params = request.query_params
        base = faculty_scope(request.user).filter(status=OutpassRequest.PENDING_FACULTY)
        summary = {
            'totalPending': base.count(),
            'urgentRequests': base.filter(is_emergency=True).count(),
            'normalRequests': base.filter(is_emergency=False).count(),
            'parentVerificationPending': base.filter(
                parent_verification=OutpassRequest.VERIFICATION_PENDING
            ).count(),
        }

        queryset = base
        if params.get('status') == 'urgent':
            queryset = queryset.filter(is_emergency=True)
        elif params.get('status') == 'pending':
            queryset = queryset.filter(is_emergency=False)
        queryset = search_outpasses(queryset, params.get('search'))
        queryset = sort_outpasses(queryset, params.get('sortOrder'))

        page, limit = page_params(params)
        records, pagination = paginate(queryset, page, limit)
        return Response({
            'success': True,
            'data': {
                'requests': [application_view(op) for op in records],
                'pagination': pagination,
                'summary': summary,
            },
        })

    @action(detail=True, methods=['put', 'post'], url_path='faculty-approve')
    def faculty_approve(self, request, pk=None):
        decision = request.data.get('status') or request.data.get('decision')
        outpass = workflow.faculty_decide(
            request.user, pk, decision,
            notes=request.data.get('notes', ''),
            rejection_reason=request.data.get('rejectionReason', ''),
            ip_address=client_ip(request),
        )
        message = 'Request forwarded to HOD.' if outpass.status == OutpassRequest.PENDING_HOD else 'Request rejected.'
        return Response({
            'success': True,
            'message': message,
            'data': StaffOutpassSerializer(outpass, context={'request': request}).data,
        })

    @action(detail=True, methods=['post'], url_path='parent-verification')
    def parent_verification(self, request, pk=None):
        outcome = request.data.get('outcome') or request.data.get('status') or request.data.get('result')
        outpass = workflow.verify_parent(
            request.user, pk, outcome, notes=request.data.get('notes', ''), ip_address=client_ip(request),
        )
        return Response({
            'success': True,
            'message': f'Parent verification recorded as {outpass.parent_verification}.',
            'data': StaffOutpassSerializer(outpass, context={'request': request}).data,
        })


# --- STUDENT ---
class StudentViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated, IsStudent]

    def _profile(self, request):
        profile = getattr(request.user, 'student_profile', None)
        if profile is None:
            raise Http404('Student profile not found. Please contact the administrator.')
        return profile

    @action(detail=False, methods=['get'])
    def profile(self, request):
        profile = self._profile(request)
        mine = outpasses().filter(student=request.user)
        approved = mine.filter(status=OutpassRequest.APPROVED).count()
        rejected = mine.filter(status=OutpassRequest.REJECTED).count()
        current = current_outpass(request.user)
        recent = mine.order_by('-created_at')[:5]

        return Response({
            'success': True,
            'profile': StudentProfileSerializer(profile).data,
            'currentOutpass': OutpassSerializer(current, context={'request': request}).data if current else None,
            'recentActivity': [
                {
                    'requestId': op.request_id,
                    'status': op.status,
                    'statusLabel': op.get_status_display(),
                    'reasonCategory': op.get_reason_category_display(),
                    'createdAt': op.created_at,
                    'updatedAt': op.updated_at,
                }
                for op in recent
            ],
            'stats': {
                'totalRequests': mine.count(),
                'approvedRequests': approved,
                'rejectedRequests': rejected,
                'approvalRate': approval_rate(approved, rejected),
                'currentScore': student_score(request.user),
            },
        })

    @action(detail=False, methods=['get'], url_path='apply-details')
    def apply_details(self, request):
        profile = self._profile(request)
        user = request.user
        department = profile.department
        attendance = profile.attendance_percentage
        return Response({
            'success': True,
            'data': {
                'name': user.full_name,
                'email': user.email,
                'rollNumber': profile.roll_number,
                'collegeId': profile.roll_number,
                'class': profile.student_class.name if profile.student_class else None,
                'department': department.name if department else None,
                'year': profile.year,
                'phone': user.phone,
                'attendancePercentage': float(attendance) if attendance is not None else None,
                'attendanceStatus': attendance_status(attendance),
                'primaryParentContact': profile.parent_phone,
                'alternateParentContact': profile.parent_phone_secondary,
            },
        })


# --- FACULTY ---
class FacultyViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated, IsFaculty]

    @action(detail=False, methods=['get'], url_path='pending-requests')
    def pending_requests(self, request):
        queryset = faculty_scope(request.user).filter(status=OutpassRequest.PENDING_FACULTY)
        if request.query_params.get('filter') == 'myclass':
            queryset = queryset.filter(student_class_id__in=my_class_ids(request.user))
        queryset = queryset.order_by('-is_emergency', 'created_at')
        return Response({
            'success': True,
            'summary': {
                'pending': queryset.count(),
                'urgent': queryset.filter(is_emergency=True).count(),
            },
            'requests': StaffOutpassSerializer(queryset, many=True, context={'request': request}).data,
        })

    @action(detail=False, methods=['get'], url_path='parent-verification')
    def parent_verification(self, request):
        queryset = faculty_scope(request.user).filter(
            status=OutpassRequest.PENDING_FACULTY,
            parent_verification=OutpassRequest.VERIFICATION_PENDING,
        ).order_by('-is_emergency', 'created_at')
        requests = []
        for op in queryset:
            profile = getattr(op.student, 'student_profile', None)
            item = application_view(op)
            item['parentName'] = profile.parent_name if profile else None
            item['parentPhone'] = op.parent_contact
            item['parentPhoneSecondary'] = profile.parent_phone_secondary if profile else None
            requests.append(item)
        return Response({'success': True, 'count': len(requests), 'requests': requests})

    @action(detail=False, methods=['get'])
    def history(self, request):
        user = request.user
        params = request.query_params
        queryset = faculty_scope(user).exclude(status=OutpassRequest.PENDING_FACULTY)

        if params.get('myclass') and parse_bool(params.get('myclass')):
            queryset = queryset.filter(student_class_id__in=my_class_ids(user))
        class_name = params.get('class')
        if class_name:
            queryset = queryset.filter(student_class__name__iexact=class_name.strip())
        roll = params.get('studentRoll')
        if roll:
            queryset = queryset.filter(student__student_profile__roll_number__icontains=roll.strip())
        if parse_bool(params.get('approvedByMe')):
            queryset = queryset.filter(faculty_approver=user).exclude(rejection_stage='faculty')
        if parse_bool(params.get('rejectedByMe')):
            queryset = queryset.filter(faculty_approver=user, rejection_stage='faculty')

        summary = outcome_summary(queryset)
        summary['forwarded'] = queryset.filter(status=OutpassRequest.PENDING_HOD).count()

        status_filter = params.get('status', 'all')
        if status_filter in dict(OutpassRequest.STATUS_CHOICES):
            queryset = queryset.filter(status=status_filter)
        queryset = sort_outpasses(queryset, params.get('sort'))

        page, limit = page_params(params, default_limit=20)
        records, pagination = paginate(queryset, page, limit)
        return Response({
            'success': True,
            'summary': summary,
            'meta': {
                'page': page,
                'limit': limit,
                'totalPages': pagination['totalPages'],
                'totalMatching': pagination['totalRecords'],
            },
            'count': len(records),
            'outpasses': StaffOutpassSerializer(records, many=True, context={'request': request}).data,
        })

    @action(detail=False, methods=['get'])
    def classes(self, request):
        user = request.user
        mine = set(my_class_ids(user))
        condition = Q(id__in=mine)
        if user.department_id:
            condition |= Q(department_id=user.department_id)
        classes = StudentClass.objects.filter(condition).select_related('department').distinct()
        return Response({
            'success': True,
            'department': user.department.name if user.department else None,
            'classes': [
                {'id': c.pk, 'name': c.name, 'year': c.year, 'isMine': c.pk in mine}
                for c in classes
            ],
        })

    @action(detail=False, methods=['get'], url_path='student-profiles')
    def student_profiles(self, request):
        user = request.user
        params = request.query_params
        profiles = StudentProfile.objects.select_related('user', 'student_class__department', 'user__department')
        if params.get('filter') == 'myclass':
            profiles = profiles.filter(student_class_id__in=my_class_ids(user))
        else:
            condition = Q(student_class_id__in=my_class_ids(user))
            if user.department_id:
                condition |= Q(student_class__department_id=user.department_id) | Q(user__department_id=user.department_id)
            profiles = profiles.filter(condition).distinct()

        roll = (params.get('roll') or '').strip()
        if roll:
            profile = profiles.filter(roll_number__iexact=roll).first()
            if profile is None:
                raise Http404(f'No student with roll number {roll} in your scope.')
            recent = outpasses().filter(student=profile.user).order_by('-created_at')[:10]
            return Response({
                'success': True,
                'type': 'single',
                'student': StudentProfileSerializer(profile).data,
                'score': student_score(profile.user),
                'outpasses': StaffOutpassSerializer(recent, many=True, context={'request': request}).data,
            })

        class_name = (params.get('class') or '').strip()
        if class_name:
            profiles = profiles.filter(student_class__name__iexact=class_name)
            return Response({
                'success': True,
                'type': 'class',
                'className': class_name,
                'count': profiles.count(),
                'students': StudentProfileSerializer(profiles.order_by('roll_number'), many=True).data,
            })

        return Response({
            'success': True,
            'type': 'list',
            'count': profiles.count(),
            'students': StudentProfileSerializer(profiles.order_by('roll_number'), many=True).data,
        })


# --- HOD ---
class HodViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated, IsHod]

    @action(detail=False, methods=['get'])
    def dashboard(self, request):
        user = request.user
        scope = hod_scope(user)
        today = timezone.localdate()
        pending = scope.filter(status=OutpassRequest.PENDING_HOD).order_by('-is_emergency', 'created_at')
        context = {'request': request}
        return Response({
            'success': True,
            'hodDetails': {
                'name': user.full_name,
                'email': user.email,
                'department': user.department.name if user.department else None,
            },
            'stats': {
                'pendingApprovals': pending.count(),
                'approvedToday': scope.filter(status=OutpassRequest.APPROVED, hod_decided_at__date=today).count(),
                'rejectedToday': scope.filter(rejection_stage='hod', hod_decided_at__date=today).count(),
                'totalFaculty': CustomUser.objects.filter(
                    department_id=user.department_id, is_active=True, userrole__role__in=UserRole.FACULTY_ROLES,
                ).count() if user.department_id else 0,
            },
            'recentPendingApprovals': StaffOutpassSerializer(pending.order_by('-created_at')[:5], many=True, context=context).data,
            'urgentAlerts': StaffOutpassSerializer(pending.filter(is_emergency=True), many=True, context=context).data,
        })

    @action(detail=False, methods=['get'], url_path='pending-approvals')
    def pending_approvals(self, request):
        user = request.user
        params = request.query_params
        base = hod_scope(user).filter(status=OutpassRequest.PENDING_HOD)
        queryset = base
        category = normalize_category(params.get('category'))
        if category:
            queryset = queryset.filter(reason_category=category)
        queryset = search_outpasses(queryset, params.get('search')).order_by('-is_emergency', 'faculty_decided_at')
        return Response({
            'success': True,
            'summary': {
                'totalPending': base.count(),
                'urgentCount': base.filter(is_emergency=True).count(),
                'department': user.department.name if user.department else None,
            },
            'requests': StaffOutpassSerializer(queryset, many=True, context={'request': request}).data,
        })

    @action(detail=False, methods=['get'])
    def history(self, request):
        user = request.user
        params = request.query_params
        base = hod_scope(user).filter(hod_decided_at__isnull=False)
        approved = base.filter(status=OutpassRequest.APPROVED).count()
        rejected = base.filter(rejection_stage='hod').count()

        queryset = base
        status_filter = params.get('status', 'all')
        if status_filter == 'hod_approved':
            queryset = queryset.filter(status=OutpassRequest.APPROVED)
        elif status_filter == 'hod_rejected':
            queryset = queryset.filter(rejection_stage='hod')
        queryset = search_outpasses(queryset, params.get('search')).order_by('-hod_decided_at')

        department_name = user.department.code if user.department else 'department'
        export = params.get('export')
        if export == 'excel':
            return exports.hod_history_xlsx(queryset, department_name)
        if export == 'pdf':
            return exports.hod_history_pdf(queryset, department_name)

        return Response({
            'success': True,
            'stats': {
                'totalProcessed': approved + rejected,
                'approvedCount': approved,
                'rejectedCount': rejected,
                'approvalRate': approval_rate(approved, rejected),
            },
            'history': StaffOutpassSerializer(queryset, many=True, context={'request': request}).data,
        })

    @action(detail=False, methods=['get'])
    def reports(self, request):
        user = request.user
        time_range = request.query_params.get('range', 'overall')
        scope = hod_scope(user)
        if time_range == 'this_month':
            month_start = timezone.localtime().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
            scope = scope.filter(created_at__gte=month_start)
        else:
            time_range = 'overall'

        approved = scope.filter(status=OutpassRequest.APPROVED)
        avg_hours = average_hours(approved.prefetch_related(None).values_list('created_at', 'hod_decided_at'))

        performance = []
        faculty = CustomUser.objects.filter(
            department_id=user.department_id, userrole__role__in=UserRole.FACULTY_ROLES,
        ).order_by('full_name') if user.department_id else CustomUser.objects.none()
        for member in faculty:
            decided = scope.filter(faculty_approver=member)
            member_rejected = decided.filter(rejection_stage='faculty').count()
            member_approved = decided.count() - member_rejected
            performance.append({
                'name': member.full_name,
                'totalRequests': decided.count(),
                'approved': member_approved,
                'rejected': member_rejected,
                'approvalRate': approval_rate(member_approved, member_rejected),
            })

        return Response({
            'success': True,
            'department': user.department.name if user.department else None,
            'timeRange': time_range,
            'stats': {
                'totalRequests': scope.count(),
                'approved': approved.count(),
                'rejected': scope.filter(status=OutpassRequest.REJECTED).count(),
                'avgApprovalTime': f"{avg_hours} hours",
            },
            'performance': performance,
        })


class HodOutpassViewSet(viewsets.GenericViewSet):
    queryset = OutpassRequest.objects.all()
    permission_classes = [IsAuthenticated, IsHod]

    @action(detail=True, methods=['put', 'post'], url_path='action')
    def decide(self, request, pk=None):
        outpass = workflow.hod_decide(
            request.user, pk, request.data.get('action'),
            rejection_reason=request.data.get('rejectionReason', ''),
            notes=request.data.get('notes', ''),
            ip_address=client_ip(request),
        )
        if outpass.status == OutpassRequest.APPROVED:
            message = f'Request approved. Gatepass {outpass.gatepass.code} issued.'
        else:
            message = 'Request rejected.'
        return Response({
            'success': True,
            'message': message,
            'data': StaffOutpassSerializer(outpass, context={'request': request}).data,
        })


# --- SECURITY (GATE) ---
class GatepassViewSet(viewsets.GenericViewSet):
    queryset = Gatepass.objects.select_related('outpass__student__student_profile')
    serializer_class = GatepassSerializer
    permission_classes = [IsAuthenticated, IsSecurity]
    lookup_field = 'code'

    def list(self, request):
        now = timezone.now()
        today = timezone.localdate()
        queryset = self.get_queryset().filter(
            Q(valid_from__date=today) | Q(exited_at__isnull=False, returned_at__isnull=True)
        )
        state = request.query_params.get('state', 'active')
        if state == 'active':
            queryset = queryset.filter(exited_at__isnull=True, valid_until__gte=now)
        elif state == 'out':
            queryset = queryset.filter(exited_at__isnull=False, returned_at__isnull=True)
        queryset = queryset.order_by('valid_from')
        return Response({
            'success': True,
            'count': queryset.count(),
            'gatepasses': GatepassSerializer(queryset, many=True).data,
        })

    @action(detail=False, methods=['post'])
    def verify(self, request):
        code = (request.data.get('code') or '').strip().upper()
        gatepass = self.get_queryset().filter(code=code).first()
        if gatepass is None:
            raise Http404('Gatepass not found.')

        now = timezone.now()
        if gatepass.returned_at:
            valid, reason = False, 'Student has already returned on this gatepass.'
        elif gatepass.exited_at:
            valid, reason = True, 'Student is out. Record the return.'
        elif workflow.is_valid_for_exit(gatepass, now):
            valid, reason = True, 'Valid for exit.'
        elif now > gatepass.valid_until:
            valid, reason = False, 'This gatepass has expired.'
        else:
            valid, reason = False, 'This gatepass is not valid yet.'
        return Response({'success': True, 'valid': valid, 'reason': reason, 'gatepass': GatepassSerializer(gatepass).data})

    @action(detail=True, methods=['post'])
    def exit(self, request, code=None):
        gatepass = workflow.record_exit(request.user, code, client_ip(request))
        return Response({'success': True, 'message': 'Exit recorded.', 'gatepass': GatepassSerializer(gatepass).data})

    @action(detail=True, methods=['post'], url_path='return')
    def record_return(self, request, code=None):
        gatepass = workflow.record_return(request.user, code, client_ip(request))
        message = 'Late return recorded.' if gatepass.is_late else 'Return recorded.'
        return Response({
            'success': True,
            'message': message,
            'isLate': gatepass.is_late,
            'gatepass': GatepassSerializer(gatepass).data,
        })


# --- ADMIN ---
class AdminViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated, IsAdminRole]

    @action(detail=False, methods=['get'])
    def dashboard(self, request):
        user = request.user
        now = timezone.now()
        today = timezone.localdate()
        all_outpasses = OutpassRequest.objects.all()
        approved = all_outpasses.filter(status=OutpassRequest.APPROVED)
        rejected_count = all_outpasses.filter(status=OutpassRequest.REJECTED).count()
        recent_logs = AuditLog.objects.select_related('user__userrole')[:10]

        return Response({
            'success': True,
            'admin': {'name': user.full_name, 'email': user.email},
            'stats': {
                'totalStudents': UserRole.objects.filter(role=UserRole.STUDENT, user__is_active=True).count(),
                'totalEmployees': UserRole.objects.filter(role__in=UserRole.EMPLOYEE_ROLES, user__is_active=True).count(),
                'pendingRequests': all_outpasses.filter(status__in=OutpassRequest.ACTIVE_STATUSES).count(),
                'approvedToday': approved.filter(hod_decided_at__date=today).count(),
                'systemAlerts': AuditLog.objects.filter(timestamp__gte=now - timedelta(hours=24)).exclude(status='success').count(),
            },
            'recentActivity': AuditLogSerializer(recent_logs, many=True).data,
            'systemHealth': {
                'outpassRequests': all_outpasses.count(),
                'approvalRate': approval_rate(approved.count(), rejected_count),
                'avgProcessingTime': f"{average_hours(approved.values_list('created_at', 'hod_decided_at'))} hours",
                'activeUsers': CustomUser.objects.filter(last_login__gte=now - timedelta(minutes=15)).count(),
            },
        })

    @action(detail=False, methods=['get'])
    def students(self, request):
        params = request.query_params
        profiles = StudentProfile.objects.select_related('user', 'student_class__department', 'user__department').order_by('roll_number')
        search = (params.get('search') or '').strip()
        if search:
            profiles = profiles.filter(
                Q(user__full_name__icontains=search) | Q(user__email__icontains=search) | Q(roll_number__icontains=search)
            )
        threshold = get_int_setting('attendance_warning_threshold', settings.OUTPASS_ATTENDANCE_WARNING_THRESHOLD)
        student_filter = params.get('filter', 'all')
        if student_filter == 'low_attendance':
            profiles = profiles.filter(attendance_percentage__lt=threshold)

        if params.get('export') == 'csv':
            return exports.students_csv(profiles)

        rows = []
        for profile in profiles:
            score = student_score(profile.user)
            low = profile.attendance_percentage is not None and profile.attendance_percentage < threshold
            row_status = 'warning' if low or score < 80 else ('active' if profile.user.is_active else 'inactive')
            if student_filter == 'warning' and row_status != 'warning':
                continue
            row = StudentProfileSerializer(profile).data
            row.update({'userId': profile.user_id, 'score': score, 'status': row_status})
            rows.append(row)
        return Response({'success': True, 'count': len(rows), 'students': rows})

    @action(detail=False, methods=['get'])
    def employees(self, request):
        params = request.query_params
        users = CustomUser.objects.filter(userrole__role__in=UserRole.EMPLOYEE_ROLES).select_related('userrole', 'department').order_by('full_name')
        role = params.get('role')
        if role:
            users = users.filter(userrole__role=role)
        search = (params.get('search') or '').strip()
        if search:
            users = users.filter(Q(full_name__icontains=search) | Q(email__icontains=search))
        return Response({
            'success': True,
            'count': users.count(),
            'employees': [
                dict(contact(u), role=u.userrole.role, roleLabel=u.userrole.get_role_display(),
                     department=u.department.name if u.department else None,
                     isActive=u.is_active, lastLogin=u.last_login)
                for u in users
            ],
        })

    @action(detail=False, methods=['get'], url_path='system-health')
    def system_health(self, request):
        return Response({
            'database': check_database(),
            'email': check_email(),
            'storage': check_storage(),
            'server': get_server_stats(),
        })


class UserManagementViewSet(viewsets.ModelViewSet):
    queryset = CustomUser.objects.select_related('userrole', 'department').order_by('full_name')
    serializer_class = UserManagementSerializer
    permission_classes = [IsAuthenticated, IsAdminRole]

    def get_serializer_class(self):
        if self.action in ['list', 'retrieve']:
            return CustomUserSerializer
        return UserManagementSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        role = self.request.query_params.get('role')
        if role:
            queryset = queryset.filter(userrole__role=role)
        return queryset

    def perform_create(self, serializer):
        user = serializer.save()
        AuditLog.objects.create(user=self.request.user, action="User Created", target=user.email, ip_address=client_ip(self.request))

    def perform_update(self, serializer):
        user = serializer.save()
        AuditLog.objects.create(user=self.request.user, action="User Updated", target=user.email, ip_address=client_ip(self.request))

    def perform_destroy(self, instance):
        if instance.pk == self.request.user.pk:
            raise ValidationError('You cannot delete your own account.')
        AuditLog.objects.create(user=self.request.user, action="User Deleted", target=instance.email, ip_address=client_ip(self.request))
        instance.delete()


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.select_related('user__userrole').order_by('-timestamp')
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, IsAdminRole]

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get('action'):
            queryset = queryset.filter(action__icontains=params['action'])
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('user'):
            queryset = queryset.filter(user__email__icontains=params['user'])
        return queryset


class GlobalSettingsViewSet(viewsets.ModelViewSet):
    queryset = GlobalSettings.objects.all().order_by('group', 'key')
    serializer_class = GlobalSettingsSerializer
    permission_classes = [IsAuthenticated]

    def get_permissions(self):
        if self.action in ['create', 'update', 'partial_update', 'destroy', 'seed']:
            return [IsAuthenticated(), IsAdminRole()]
        return [IsAuthenticated()]

    def get_queryset(self):
        if is_admin(self.request.user):
            return super().get_queryset()
        return super().get_queryset().filter(is_public=True)

    def perform_create(self, serializer):
        setting = serializer.save()
        AuditLog.objects.create(user=self.request.user, action="Settings Update", target=setting.key, ip_address=client_ip(self.request))

    def perform_update(self, serializer):
        setting = serializer.save()
        logger.info("Global setting %s changed by %s", setting.key, self.request.user.email)
        AuditLog.objects.create(user=self.request.user, action="Settings Update", target=setting.key, ip_address=client_ip(self.request))

    @action(detail=False, methods=['post'])
    def seed(self, request):
        created = seed_global_settings()
        AuditLog.objects.create(user=request.user, action="Settings Seeded", target=f"{created} new keys", ip_address=client_ip(request))
        return Response({'success': True, 'message': 'Settings seeded successfully', 'created': created})


class DepartmentViewSet(viewsets.ModelViewSet):
    queryset = Department.objects.all().order_by('name')
    serializer_class = DepartmentSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [IsAuthenticated()]
        return [IsAuthenticated(), IsAdminRole()]


class StudentClassViewSet(viewsets.ModelViewSet):
    queryset = StudentClass.objects.select_related('department', 'class_teacher').order_by('department__name', 'year', 'name')
    serializer_class = StudentClassSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [IsAuthenticated()]
        return [IsAuthenticated(), IsAdminRole()]
