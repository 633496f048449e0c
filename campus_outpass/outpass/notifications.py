import logging

from django.conf import settings
from django.core.mail import send_mail
from django.db.models import Q
from django.utils import timezone

from .models import CustomUser, UserRole
from .global_settings import get_global_setting

logger = logging.getLogger(__name__)


def outpass_context(outpass, actor=None):
    student = outpass.student
    profile = getattr(student, 'student_profile', None)
    gatepass = getattr(outpass, 'gatepass', None)
    return {
        'request_id': outpass.request_id,
        'student_name': student.full_name,
        'roll_number': profile.roll_number if profile else '-',
        'class_name': outpass.student_class.name if outpass.student_class else '-',
        'department': outpass.department.name if outpass.department else '-',
        'category': outpass.get_reason_category_display(),
        'reason': outpass.reason,
        'exit_time': timezone.localtime(outpass.exit_time).strftime('%d %b %Y %I:%M %p'),
        'return_time': timezone.localtime(outpass.return_time).strftime('%d %b %Y %I:%M %p'),
        'actor_name': actor.full_name if actor else '-',
        'stage': outpass.get_rejection_stage_display() if outpass.rejection_stage else '-',
        'rejection_reason': outpass.rejection_reason or '-',
        'gatepass_code': gatepass.code if gatepass else '-',
        'system_name': get_global_setting('system_name', 'Campus Outpass Portal'),
    }


def send_templated_mail(template_key, context, recipient_list, default_subject, default_body):
    """
    Renders the subject/body templates stored in GlobalSettings and mails them.
    A broken template or a mail failure is logged and never raised.
    """
    recipient_list = [r for r in recipient_list if r]
    if not recipient_list:
        logger.info("No recipients for %s on %s", template_key, context.get('request_id'))
        return 0

    subject_tmpl = get_global_setting(f'email_{template_key}_subject', default_subject)
    body_tmpl = get_global_setting(f'email_{template_key}_body', default_body)
    try:
        subject = subject_tmpl.format(**context)
        message = body_tmpl.format(**context)
    except (KeyError, IndexError, ValueError, AttributeError, TypeError) as e:
        logger.warning("Email template %s is invalid (%s), using the built-in text", template_key, e)
        subject = default_subject.format(**context)
        message = default_body.format(**context)

    system_from_email = get_global_setting('system_email', getattr(settings, 'DEFAULT_FROM_EMAIL', 'webmaster@localhost'))
    try:
        sent = send_mail(
            subject=subject,
            message=message,
            from_email=system_from_email,
            recipient_list=recipient_list,
            fail_silently=True,
        )
    except Exception:
        logger.exception("Email %s for %s could not be built", template_key, context.get('request_id'))
        return 0
    if not sent:
        logger.warning("Email %s for %s was not delivered to %s", template_key, context.get('request_id'), recipient_list)
    return sent


def faculty_for(outpass):
    """Class teacher and mentors of the student's class, else the department's faculty."""
    student_class = outpass.student_class
    users = CustomUser.objects.none()
    if student_class:
        users = CustomUser.objects.filter(
            Q(pk=student_class.class_teacher_id) | Q(mentored_classes=student_class), is_active=True,
        ).distinct()
    if not users.exists() and outpass.department_id:
        users = CustomUser.objects.filter(
            department_id=outpass.department_id, is_active=True,
            userrole__role__in=UserRole.FACULTY_ROLES,
        )
    return users


def hods_for(outpass):
    if not outpass.department_id:
        return CustomUser.objects.none()
    return CustomUser.objects.filter(
        department_id=outpass.department_id, is_active=True, userrole__role=UserRole.HOD,
    )


def faculty_recipients(outpass):
    return sorted(set(faculty_for(outpass).values_list('email', flat=True)))


def hod_recipients(outpass):
    return list(hods_for(outpass).values_list('email', flat=True))



def notify_submitted(outpass):
    send_templated_mail(
        'new_request', outpass_context(outpass), faculty_recipients(outpass),
        '[Outpass] New request {request_id} from {student_name}',
        'Student: {student_name} ({roll_number})\nCategory: {category}\nExit: {exit_time}\nReturn: {return_time}\nReason: {reason}',
    )


def notify_faculty_approved(outpass, actor):
    context = outpass_context(outpass, actor)
    send_templated_mail(
        'hod_review', context, hod_recipients(outpass),
        '[Outpass] {request_id} forwarded for HOD approval',
        'Outpass request {request_id} from {student_name} is waiting for your decision.',
    )
    send_templated_mail(
        'faculty_approved', context, [outpass.student.email],
        '[Outpass] {request_id} approved by faculty',
        'Dear {student_name},\nYour outpass request {request_id} has been forwarded to your HOD.',
    )


def notify_rejected(outpass, actor):
    send_templated_mail(
        'request_rejected', outpass_context(outpass, actor), [outpass.student.email],
        '[Outpass] {request_id} rejected',
        'Dear {student_name},\nYour outpass request {request_id} was rejected.\nReason: {rejection_reason}',
    )


def notify_gatepass_issued(outpass, actor):
    send_templated_mail(
        'gatepass_issued', outpass_context(outpass, actor), [outpass.student.email],
        '[Outpass] Gatepass issued for {request_id}',
        'Dear {student_name},\nGatepass code: {gatepass_code}\nValid until: {return_time}',
    )
