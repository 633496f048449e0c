import csv
import io

from django.http import HttpResponse
from django.utils import timezone
from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HOD_HISTORY_HEADERS = ["Request ID", "Student", "Roll No", "Class", "Category", "Exit", "Return", "Decision", "Decided At", "Reason / Notes"]


def _fmt(value, pattern="%Y-%m-%d %H:%M"):
    if not value:
        return "-"
    return timezone.localtime(value).strftime(pattern)


def _roll(outpass):
    profile = getattr(outpass.student, 'student_profile', None)
    return profile.roll_number if profile else "-"


def hod_history_rows(history):
    for op in history:
        decision = "REJECTED" if op.status == op.REJECTED else "APPROVED"
        yield [
            op.request_id, op.student.full_name, _roll(op),
            op.student_class.name if op.student_class else "-",
            op.get_reason_category_display(), _fmt(op.exit_time), _fmt(op.return_time),
            decision, _fmt(op.hod_decided_at), op.rejection_reason or op.hod_notes,
        ]


def hod_history_xlsx(history, department_name):
    wb = Workbook()
    ws = wb.active
    ws.title = "HOD History"
    ws.append(HOD_HISTORY_HEADERS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in hod_history_rows(history):
        ws.append(row)

    response = HttpResponse(content_type=XLSX_CONTENT_TYPE)
    response["Content-Disposition"] = f'attachment; filename="HOD_History_{department_name}_{timezone.localdate()}.xlsx"'
    wb.save(response)
    return response


def hod_history_pdf(history, department_name):
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4))
    elements = []
    styles = getSampleStyleSheet()

    elements.append(Paragraph(f"HOD Outpass History - {department_name}", styles["Title"]))
    elements.append(Paragraph(f"Generated: {_fmt(timezone.now())}", styles["Normal"]))
    elements.append(Spacer(1, 20))

    data = [["Request ID", "Student", "Roll No", "Category", "Exit", "Decision", "Decided At"]]
    for row in hod_history_rows(history):
        data.append([row[0], row[1], row[2], row[4], row[5], row[7], row[8]])

    table = Table(data, colWidths=[100, 150, 80, 100, 110, 80, 110], repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.navy),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('GRID', (0, 0), (-1, -1), 1, colors.black),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
    ]))
    elements.append(table)
    doc.build(elements)

    buffer.seek(0)
    response = HttpResponse(buffer, content_type='application/pdf')
    response["Content-Disposition"] = f'attachment; filename="HOD_History_{department_name}_{timezone.localdate()}.pdf"'
    return response


def students_csv(profiles):
    response = HttpResponse(content_type="text/csv")
    response['Content-Disposition'] = f'attachment; filename="students_{timezone.localdate()}.csv"'
    writer = csv.writer(response)
    writer.writerow(["Name", "Email", "Roll No", "Class", "Year", "Department", "Attendance %", "Parent Name", "Parent Phone"])
    for p in profiles:
        department = p.department
        writer.writerow([
            p.user.full_name, p.user.email, p.roll_number,
            p.student_class.name if p.student_class else "", p.year,
            department.name if department else "",
            p.attendance_percentage if p.attendance_percentage is not None else "",
            p.parent_name, p.parent_phone,
        ])
    return response


def qr_drawing(value, size=130):
    widget = QrCodeWidget(value)
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
    drawing.add(widget)
    return drawing


def gatepass_pdf(outpass, system_name):
    """Printable gatepass with a QR code the gate scanner reads."""
    gatepass = outpass.gatepass
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"Gatepass {gatepass.code}")
    styles = getSampleStyleSheet()
    elements = [
        Paragraph(system_name, styles["Title"]),
        Paragraph("STUDENT GATEPASS", styles["Heading2"]),
        Spacer(1, 12),
    ]

    details = [
        ["Gatepass Code", gatepass.code],
        ["Request ID", outpass.request_id],
        ["Student", outpass.student.full_name],
        ["Roll No", _roll(outpass)],
        ["Class", outpass.student_class.name if outpass.student_class else "-"],
        ["Department", outpass.department.name if outpass.department else "-"],
        ["Category", outpass.get_reason_category_display()],
        ["Valid From", _fmt(gatepass.valid_from, "%d %b %Y %I:%M %p")],
        ["Valid Until", _fmt(gatepass.valid_until, "%d %b %Y %I:%M %p")],
        ["Faculty Approval", outpass.faculty_approver.full_name if outpass.faculty_approver else "-"],
        ["HOD Approval", outpass.hod_approver.full_name if outpass.hod_approver else "-"],
        ["Issued At", _fmt(gatepass.issued_at)],
    ]
    table = Table(details, colWidths=[140, 300])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (0, -1), colors.lightgrey),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
    ]))
    elements.append(table)
    elements.append(Spacer(1, 20))
    elements.append(qr_drawing(gatepass.code))
    elements.append(Paragraph("Present this pass at the gate on exit and on return.", styles["Normal"]))
    doc.build(elements)

    buffer.seek(0)
    response = HttpResponse(buffer, content_type='application/pdf')
    response["Content-Disposition"] = f'attachment; filename="gatepass_{gatepass.code}.pdf"'
    return response
