"""
Outpass state machine.

    pending_faculty --faculty approve--> pending_hod --hod approve--> approved (+ Gatepass)
    pending_faculty --faculty reject --> rejected (stage=faculty)
    pending_hod     --hod reject     --> rejected (stage=hod)
    pending_faculty / pending_hod --student cancel--> cancelled

Every transition runs in one transaction on a locked row, appends a
StatusUpdate and an AuditLog entry, then sends its notifications once
the transaction has finished.
"""
import logging
import secrets
from collections import namedtuple
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.http import Http404
from django.utils import timezone

from .models import CustomUser, UserRole, OutpassRequest, StatusUpdate, Gatepass, AuditLog
from .exceptions import WorkflowConflict, WorkflowForbidden, ApplyValidationError
from .global_settings import get_bool_setting
from .permissions import get_role
from .validators import validate_apply_form, check_eligibility
from . import notifications

logger = logging.getLogger(__name__)

Transition = namedtuple('Transition', ['sources', 'target', 'label'])

TRANSITIONS = {
    'faculty_approve': Transition((OutpassRequest.PENDING_FACULTY,), OutpassRequest.PENDING_HOD, 'Approved by faculty, forwarded to HOD'),
    'faculty_reject': Transition((OutpassRequest.PENDING_FACULTY,), OutpassRequest.REJECTED, 'Rejected by faculty'),
    'hod_approve': Transition((OutpassRequest.PENDING_HOD,), OutpassRequest.APPROVED, 'Approved by HOD, gatepass issued'),
    'hod_reject': Transition((OutpassRequest.PENDING_HOD,), OutpassRequest.REJECTED, 'Rejected by HOD'),
    'cancel': Transition(OutpassRequest.ACTIVE_STATUSES, OutpassRequest.CANCELLED, 'Cancelled by student'),
}

APPROVE_WORDS = ('approve', 'approved')
REJECT_WORDS = ('reject', 'rejected')
PARENT_OUTCOMES = {
    'confirmed': OutpassRequest.VERIFICATION_CONFIRMED,
    'confirm': OutpassRequest.VERIFICATION_CONFIRMED,
    'approved': OutpassRequest.VERIFICATION_CONFIRMED,
    'denied': OutpassRequest.VERIFICATION_DENIED,
    'deny': OutpassRequest.VERIFICATION_DENIED,
    'rejected': OutpassRequest.VERIFICATION_DENIED,
}


def available_transitions(status):
    return [name for name, t in TRANSITIONS.items() if status in t.sources]


def audit(user, action, target, ip_address=None, status="success"):
    AuditLog.objects.create(user=user, action=action, target=target, ip_address=ip_address, status=status)


def _lookup(identifier):
    identifier = str(identifier).strip()
    if identifier.isdigit():
        return {'pk': int(identifier)}
    return {'request_id': identifier.upper()}


def get_outpass(identifier, queryset=None):
    queryset = queryset if queryset is not None else OutpassRequest.objects.all()
    try:
        return queryset.get(**_lookup(identifier))
    except OutpassRequest.DoesNotExist:
        raise Http404('Outpass request not found.')


def _lock(identifier):
    return get_outpass(identifier, OutpassRequest.objects.select_for_update())


def _check_transition(outpass, name, actor):
    transition = TRANSITIONS[name]
    if outpass.status not in transition.sources:
        logger.warning(
            "Refused %s on %s by %s: status is %s", name, outpass.request_id, actor.email, outpass.status,
        )
        raise WorkflowConflict(
            f'Request {outpass.request_id} is {outpass.get_status_display().lower()} and cannot be changed.'
        )
    return transition


def _record(outpass, transition_name, actor, message, ip_address):
    transition = TRANSITIONS[transition_name]
    StatusUpdate.objects.create(outpass=outpass, status=outpass.status, message=message, actor=actor)
    audit(actor, transition.label, f"Outpass {outpass.request_id}", ip_address)
    logger.info("Outpass %s: %s by %s", outpass.request_id, transition.label, actor.email)


def can_faculty_act(user, outpass):
    if get_role(user) not in UserRole.FACULTY_ROLES:
        return False
    if outpass.department_id and user.department_id == outpass.department_id:
        return True
    student_class = outpass.student_class
    if student_class is None:
        return False
    return student_class.class_teacher_id == user.pk or student_class.mentors.filter(pk=user.pk).exists()


def can_hod_act(user, outpass):
    return get_role(user) == UserRole.HOD and bool(outpass.department_id) and user.department_id == outpass.department_id


def submit_outpass(student, data, files, ip_address=None):
    cleaned = validate_apply_form(student, data, files)
    document = cleaned.pop('supporting_document')
    profile = student.student_profile
    check_eligibility(profile, cleaned['is_emergency'])

    with transaction.atomic():
        # serialises concurrent submissions from the same student
        CustomUser.objects.select_for_update().get(pk=student.pk)
        if OutpassRequest.objects.filter(student=student, status__in=OutpassRequest.ACTIVE_STATUSES).exists():
            logger.warning("Refused second active outpass for %s", student.email)
            raise WorkflowConflict('You already have an active outpass request. Cancel it or wait for a decision.')

        outpass = OutpassRequest(
            student=student,
            department=profile.department,
            student_class=profile.student_class,
            attendance_at_apply=profile.attendance_percentage,
            **cleaned,
        )
        if document:
            outpass.supporting_document = document
        outpass.save()
        StatusUpdate.objects.create(
            outpass=outpass, status=outpass.status, actor=student,
            message='Submitted, awaiting faculty review' + (' (emergency)' if outpass.is_emergency else ''),
        )
        audit(student, "Outpass Submitted", f"Outpass {outpass.request_id}", ip_address)
        logger.info("Outpass %s submitted by %s (emergency=%s)", outpass.request_id, student.email, outpass.is_emergency)

    notifications.notify_submitted(outpass)
    return outpass


def cancel_outpass(student, identifier, ip_address=None):
    with transaction.atomic():
        outpass = _lock(identifier)
        if outpass.student_id != student.pk:
            raise WorkflowForbidden('You can only cancel your own requests.')
        _check_transition(outpass, 'cancel', student)
        outpass.status = OutpassRequest.CANCELLED
        outpass.cancelled_at = timezone.now()
        outpass.save()
        _record(outpass, 'cancel', student, 'Cancelled by student', ip_address)
    return outpass


def _decision(value):
    value = (value or '').strip().lower()
    if value in APPROVE_WORDS:
        return 'approve'
    if value in REJECT_WORDS:
        return 'reject'
    raise ApplyValidationError({'status': 'Decision must be "approved" or "rejected".'})


def _require_reason(reason):
    reason = (reason or '').strip()
    if not reason:
        raise ApplyValidationError({'rejectionReason': 'A reason is required to reject a request.'})
    return reason


def faculty_decide(actor, identifier, decision, notes='', rejection_reason='', ip_address=None):
    decision = _decision(decision)
    notes = (notes or '').strip()

    with transaction.atomic():
        outpass = _lock(identifier)
        if not can_faculty_act(actor, outpass):
            raise WorkflowForbidden('Only faculty of the student\'s department or class can review this request.')
        name = f'faculty_{decision}'
        _check_transition(outpass, name, actor)

        if decision == 'approve':
            if outpass.parent_verification == OutpassRequest.VERIFICATION_DENIED:
                raise WorkflowConflict('The parent did not confirm this request. It can only be rejected.')
            needs_parent = get_bool_setting('require_parent_verification', True) and not outpass.is_emergency
            if needs_parent and outpass.parent_verification != OutpassRequest.VERIFICATION_CONFIRMED:
                raise WorkflowConflict('Parent verification must be confirmed before approving.')
        else:
            # the web client sends the reason as notes
            rejection_reason = _require_reason(rejection_reason or notes)

        now = timezone.now()
        outpass.faculty_approver = actor
        outpass.faculty_decided_at = now
        outpass.faculty_notes = notes
        outpass.status = TRANSITIONS[name].target
        if decision == 'reject':
            outpass.rejection_stage = 'faculty'
            outpass.rejection_reason = rejection_reason
            message = f'Rejected by {actor.full_name}: {rejection_reason}'
        else:
            message = f'Approved by {actor.full_name}, forwarded to HOD'
        outpass.save()
        _record(outpass, name, actor, message[:255], ip_address)

    if decision == 'approve':
        notifications.notify_faculty_approved(outpass, actor)
    else:
        notifications.notify_rejected(outpass, actor)
    return outpass


def verify_parent(actor, identifier, outcome, notes='', ip_address=None):
    verification = PARENT_OUTCOMES.get((outcome or '').strip().lower())
    if verification is None:
        raise ApplyValidationError({'outcome': 'Outcome must be "confirmed" or "denied".'})

    with transaction.atomic():
        outpass = _lock(identifier)
        if not can_faculty_act(actor, outpass):
            raise WorkflowForbidden('Only faculty of the student\'s department or class can verify parents.')
        if outpass.status != OutpassRequest.PENDING_FACULTY:
            raise WorkflowConflict('Parent verification can only be recorded before the faculty decision.')
        outpass.parent_verification = verification
        outpass.parent_verified_by = actor
        outpass.parent_verified_at = timezone.now()
        outpass.parent_verification_notes = (notes or '').strip()
        outpass.save()
        StatusUpdate.objects.create(
            outpass=outpass, status=outpass.status, actor=actor,
            message=f'Parent verification {verification} by {actor.full_name}'[:255],
        )
        audit(actor, f"Parent Verification {verification.title()}", f"Outpass {outpass.request_id}", ip_address)
        logger.info("Outpass %s: parent verification %s by %s", outpass.request_id, verification, actor.email)
    return outpass


def hod_decide(actor, identifier, action, rejection_reason='', notes='', ip_address=None):
    decision = _decision(action)
    notes = (notes or '').strip()

    with transaction.atomic():
        outpass = _lock(identifier)
        if not can_hod_act(actor, outpass):
            raise WorkflowForbidden('Only the HOD of this department can decide on this request.')
        name = f'hod_{decision}'
        _check_transition(outpass, name, actor)
        if decision == 'reject':
            rejection_reason = _require_reason(rejection_reason or notes)

        now = timezone.now()
        outpass.hod_approver = actor
        outpass.hod_decided_at = now
        outpass.hod_notes = notes
        outpass.status = TRANSITIONS[name].target
        if decision == 'reject':
            outpass.rejection_stage = 'hod'
            outpass.rejection_reason = rejection_reason
            message = f'Rejected by HOD {actor.full_name}: {rejection_reason}'
        else:
            message = f'Approved by HOD {actor.full_name}, gatepass issued'
        outpass.save()
        if decision == 'approve':
            issue_gatepass(outpass, now)
        _record(outpass, name, actor, message[:255], ip_address)

    if decision == 'approve':
        notifications.notify_gatepass_issued(outpass, actor)
    else:
        notifications.notify_rejected(outpass, actor)
    return outpass


def _new_gatepass_code():
    while True:
        code = 'GP' + secrets.token_hex(4).upper()
        if not Gatepass.objects.filter(code=code).exists():
            return code


def issue_gatepass(outpass, now=None):
    return Gatepass.objects.create(
        outpass=outpass,
        code=_new_gatepass_code(),
        issued_at=now or timezone.now(),
        valid_from=outpass.exit_time,
        valid_until=outpass.return_time,
    )


def _lock_gatepass(code):
    try:
        return Gatepass.objects.select_for_update().get(code=str(code).strip().upper())
    except Gatepass.DoesNotExist:
        raise Http404('Gatepass not found.')


def gate_window(gatepass):
    early = timedelta(minutes=settings.OUTPASS_GATE_EARLY_EXIT_MINUTES)
    return gatepass.valid_from - early, gatepass.valid_until


def is_valid_for_exit(gatepass, now=None):
    now = now or timezone.now()
    opens, closes = gate_window(gatepass)
    return gatepass.exited_at is None and opens <= now <= closes


def record_exit(actor, code, ip_address=None):
    with transaction.atomic():
        gatepass = _lock_gatepass(code)
        now = timezone.now()
        if gatepass.exited_at:
            raise WorkflowConflict('Exit has already been recorded for this gatepass.')
        opens, closes = gate_window(gatepass)
        if now < opens:
            raise WorkflowConflict('This gatepass is not valid yet.')
        if now > closes:
            raise WorkflowConflict('This gatepass has expired.')
        gatepass.exited_at = now
        gatepass.exit_recorded_by = actor
        gatepass.save()
        outpass = gatepass.outpass
        StatusUpdate.objects.create(outpass=outpass, status=outpass.status, actor=actor, message='Left campus')
        audit(actor, "Gate Exit", f"Gatepass {gatepass.code}", ip_address)
        logger.info("Gatepass %s: exit recorded by %s", gatepass.code, actor.email)
    return gatepass


def record_return(actor, code, ip_address=None):
    with transaction.atomic():
        gatepass = _lock_gatepass(code)
        if not gatepass.exited_at:
            raise WorkflowConflict('No exit has been recorded for this gatepass.')
        if gatepass.returned_at:
            raise WorkflowConflict('Return has already been recorded for this gatepass.')
        gatepass.returned_at = timezone.now()
        gatepass.return_recorded_by = actor
        gatepass.save()
        outpass = gatepass.outpass
        message = 'Returned to campus (late)' if gatepass.is_late else 'Returned to campus'
        StatusUpdate.objects.create(outpass=outpass, status=outpass.status, actor=actor, message=message)
        audit(actor, "Gate Return", f"Gatepass {gatepass.code}", ip_address, status="late" if gatepass.is_late else "success")
        if gatepass.is_late:
            logger.warning("Gatepass %s: late return recorded by %s", gatepass.code, actor.email)
        else:
            logger.info("Gatepass %s: return recorded by %s", gatepass.code, actor.email)
    return gatepass
