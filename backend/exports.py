import csv
import io
import re
from typing import List, Optional, Set, Tuple

from openpyxl import Workbook
from sqlalchemy.orm import Session

from live_state import scheduled_date
from models import Event, EventAssignment, Profile, Registration, RegistrationStatus
from registration_rules import is_group_event
from registration_service import is_leader, team_member_id_set
from time_utils import today_tz

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

PERSON_COLUMNS = ["Roll Number", "Name", "Email", "School", "Department", "Year of Study", "Gender", "Phone Number"]
GROUP_HEADERS = ["Team No", "Member No"] + PERSON_COLUMNS
INDIVIDUAL_HEADERS = ["Member No"] + PERSON_COLUMNS


def _gender_text(value) -> str:
    if hasattr(value, "value"):
        return str(value.value or "")
    return str(value or "")


def _profile_cells(profile: Profile) -> List[object]:
    return [
        profile.roll_number,
        profile.full_name,
        profile.college_email,
        profile.school or "",
        profile.department or "",
        profile.year_of_study or "",
        _gender_text(profile.gender),
        profile.phone or "",
    ]


def _snapshot_cells(member: dict) -> List[object]:
    return [
        member.get("roll_number") or "",
        member.get("full_name") or member.get("name") or "",
        member.get("college_email") or member.get("email") or "",
        member.get("school") or "",
        member.get("department") or "",
        member.get("year_of_study") or "",
        member.get("gender") or "",
        member.get("phone") or "",
    ]


def _confirmed_rows(db: Session, event_id: int) -> List[Tuple[Registration, Profile]]:
    return (
        db.query(Registration, Profile)
        .join(Profile, Registration.profile_id == Profile.id)
        .filter(Registration.event_id == event_id, Registration.status == RegistrationStatus.CONFIRMED)
        .order_by(Registration.registered_at.asc(), Registration.id.asc())
        .all()
    )


def _coordinator_names(db: Session, event_id: int) -> List[str]:
    rows = (
        db.query(Profile.full_name)
        .join(EventAssignment, EventAssignment.coordinator_id == Profile.id)
        .filter(EventAssignment.event_id == event_id)
        .order_by(Profile.full_name.asc())
        .all()
    )
    return [name for (name,) in rows if name]


def event_header_rows(db: Session, event: Event, total_participants: int) -> List[List[object]]:
    resolved = scheduled_date(db, event)
    header = [
        ["Event Name:", event.name],
        ["Category:", _gender_text(event.category)],
        ["Event Type:", _gender_text(event.subcategory)],
        ["Date:", resolved.isoformat() if resolved else "TBA"],
        ["Venue:", event.venue or "TBA"],
        ["Fee:", f"₹{event.fee or 0}"],
    ]
    coordinators = _coordinator_names(db, event.id)
    if coordinators:
        header.append(["Coordinators:", ", ".join(coordinators)])
    header.append(["Total Participants:", total_participants])
    return header


def group_rows(rows: List[Tuple[Registration, Profile]], member_ids: Set[int]) -> List[List[object]]:
    """Leader row carries the team number; member rows leave it blank.

    Any confirmed row not listed under another leader opens a team, so a leader
    whose team shrank to one still gets a numbered row.
    """
    out = []
    team_no = 0
    for registration, leader in rows:
        if not is_leader(registration) and leader.id in member_ids:
            continue
        team_no += 1
        out.append([team_no, 1] + _profile_cells(leader))
        for idx, member in enumerate(registration.team_members or []):
            out.append(["", idx + 2] + _snapshot_cells(member))
    return out


def individual_rows(rows: List[Tuple[Registration, Profile]]) -> List[List[object]]:
    return [[idx + 1] + _profile_cells(profile) for idx, (_, profile) in enumerate(rows)]


def _export_to_csv(headers: List[str], rows: List[List[object]], preamble: Optional[List[List[object]]] = None) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    if preamble:
        writer.writerows(preamble)
        writer.writerow([])
    writer.writerow(headers)
    writer.writerows(rows)
    return output.getvalue().encode("utf-8")


def _export_to_xlsx(headers: List[str], rows: List[List[object]], preamble: Optional[List[List[object]]] = None) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Participants"
    if preamble:
        for row in preamble:
            ws.append(row)
        ws.append([])
    ws.append(headers)
    for row in rows:
        ws.append(row)
    out = io.BytesIO()
    wb.save(out)
    out.seek(0)
    return out.read()


def _safe_filename(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", name or "event", flags=re.IGNORECASE)


def export_confirmed_registrations(db: Session, event: Event, format: str = "csv") -> Tuple[bytes, str, str]:
    """Returns (content, media_type, filename) for the event's confirmed participants."""
    rows = _confirmed_rows(db, event.id)
    if is_group_event(event):
        headers = GROUP_HEADERS
        body = group_rows(rows, team_member_id_set(db, event.id))
    else:
        headers = INDIVIDUAL_HEADERS
        body = individual_rows(rows)
    preamble = event_header_rows(db, event, len(rows))

    stem = f"{_safe_filename(event.name)}_Participants_{today_tz().isoformat()}"
    if format == "xlsx":
        return _export_to_xlsx(headers, body, preamble), XLSX_MEDIA_TYPE, f"{stem}.xlsx"
    return _export_to_csv(headers, body, preamble), "text/csv", f"{stem}.csv"
