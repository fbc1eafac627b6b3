# blueprints/substitution/engine.py
"""
Pure substitution logic: no Flask, no session.

Everything here works over dataclasses already loaded into memory and an
explicit ScheduleConfig, so services can load a snapshot once and call
these functions as often as the UI needs (the availability filter is
re-run on every dropdown render).
"""
from __future__ import annotations
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

FREE = "FREE"
WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

_SLOT_RE = re.compile(r"^\s*(\d{1,2})[:.](\d{2})\s*-\s*(\d{1,2})[:.](\d{2})\s*$")

# teacher_id -> day -> period -> "FREE" | class name
TeacherSchedules = Dict[int, Dict[str, Dict[str, str]]]
# absent teacher_id -> period -> substitute teacher_id (None = blank)
AssignmentMatrix = Mapping[int, Mapping[str, Optional[int]]]


class CommitRejected(ValueError):
    """Commit refused before anything is written."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def as_dict(self) -> dict:
        out = {"code": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


# ---------- DTO ----------
@dataclass(frozen=True)
class ScheduleConfig:
    periods: Tuple[str, ...]
    time_slots: Tuple[str, ...]
    days: Tuple[str, ...] = tuple(WEEKDAYS[:6])
    default_minutes: int = 45

    def time_slot_for(self, period: str) -> str:
        # periods и time_slots: параллельные списки
        try:
            idx = self.periods.index(period)
        except ValueError:
            return ""
        return self.time_slots[idx] if idx < len(self.time_slots) else ""

    def minutes_for(self, period: str) -> float:
        return period_minutes(self.time_slot_for(period), self.default_minutes)


@dataclass(frozen=True)
class TeacherRef:
    id: int
    name: str


@dataclass(frozen=True)
class PeriodCell:
    subject: str = ""
    teacher_id: Optional[int] = None
    time: str = ""


@dataclass
class ClassTimetable:
    id: int
    class_name: str
    # day -> period -> cell
    schedule: Dict[str, Dict[str, PeriodCell]] = field(default_factory=dict)

    def cell(self, day: str, period: str) -> Optional[PeriodCell]:
        return self.schedule.get(day, {}).get(period)


@dataclass
class AbsentTeacher:
    teacher_id: int
    name: str
    periods: List[str]


@dataclass(frozen=True)
class SubstitutionRow:
    date: date
    absent_teacher_id: Optional[int]
    absent_teacher: str
    period: str
    original_class: str
    original_subject: str
    substitute_teacher_id: Optional[int]
    substitute_teacher: str
    remarks: str = ""


@dataclass
class SubstituteStats:
    teacher: str
    teacher_id: Optional[int]
    periods: int
    hours: float
    days: int

    @property
    def periods_per_day(self) -> float:
        return round(self.periods / self.days, 1) if self.days else 0.0


# ---------- helpers ----------
def weekday_name(d: date) -> str:
    return WEEKDAYS[d.weekday()]


def period_minutes(label: str | None, default: float = 45) -> float:
    """Length of an "H:MM-H:MM" slot in minutes; default when the label is missing or unusable."""
    if not label:
        return default
    m = _SLOT_RE.match(label)
    if not m:
        return default
    h1, m1, h2, m2 = (int(x) for x in m.groups())
    if h1 > 23 or h2 > 23 or m1 > 59 or m2 > 59:
        return default
    minutes = (h2 * 60 + m2) - (h1 * 60 + m1)
    if minutes <= 0:
        return default
    return float(minutes)


def empty_schedule(config: ScheduleConfig) -> Dict[str, Dict[str, str]]:
    return {day: {p: FREE for p in config.periods} for day in config.days}


# ---------- 1. sync ----------
def sync_teacher_schedules(teachers: Sequence[TeacherRef], classes: Sequence[ClassTimetable],
                           config: ScheduleConfig) -> TeacherSchedules:
    """
    Full rebuild of every teacher's day/period map from the class timetables.
    Unassigned slots are FREE; a teacher placed in two classes in one slot
    gets both class names joined with "+" (class order).
    """
    result: TeacherSchedules = {t.id: empty_schedule(config) for t in teachers}
    for cls in classes:
        for day in config.days:
            for period in config.periods:
                cell = cls.cell(day, period)
                if cell is None or cell.teacher_id is None:
                    continue
                sched = result.get(cell.teacher_id)
                if sched is None:
                    # ячейка ссылается на преподавателя вне ростера
                    continue
                current = sched[day][period]
                sched[day][period] = cls.class_name if current == FREE else f"{current}+{cls.class_name}"
    return result


# ---------- 2. absence ----------
def scheduled_periods(schedule: Mapping[str, Mapping[str, str]] | None, day: str,
                      config: ScheduleConfig) -> List[str]:
    day_map = (schedule or {}).get(day, {})
    return [p for p in config.periods if day_map.get(p, FREE) not in (FREE, "")]


def register_absence(teacher: TeacherRef, day: str, schedules: TeacherSchedules,
                     config: ScheduleConfig) -> AbsentTeacher:
    return AbsentTeacher(
        teacher_id=teacher.id,
        name=teacher.name,
        periods=scheduled_periods(schedules.get(teacher.id), day, config),
    )


def teaching_teachers(day: str, teachers: Sequence[TeacherRef], schedules: TeacherSchedules,
                      config: ScheduleConfig) -> List[TeacherRef]:
    """Teachers with at least one class that day (the only useful absence candidates)."""
    return [t for t in teachers if scheduled_periods(schedules.get(t.id), day, config)]


# ---------- 3. availability ----------
def _busy_substitutes(period: str, assignments: AssignmentMatrix,
                      for_absent_id: Optional[int] = None) -> set[int]:
    busy: set[int] = set()
    for absent_id, row in assignments.items():
        if for_absent_id is not None and absent_id == for_absent_id:
            continue
        sub = row.get(period)
        if sub is not None:
            busy.add(sub)
    return busy


def is_free(teacher_id: int, day: str, period: str, schedules: TeacherSchedules) -> bool:
    value = schedules.get(teacher_id, {}).get(day, {}).get(period)
    return not value or value == FREE


def available_teachers(period: str, day: str, teachers: Sequence[TeacherRef],
                       schedules: TeacherSchedules, absent: Iterable[AbsentTeacher],
                       assignments: AssignmentMatrix,
                       for_absent_id: Optional[int] = None) -> List[TeacherRef]:
    """
    Candidates for one period, in roster order: not absent, free in their own
    schedule, and not already covering this period for another absent teacher.
    """
    absent_ids = {a.teacher_id for a in absent}
    busy = _busy_substitutes(period, assignments, for_absent_id)
    return [
        t for t in teachers
        if t.id not in absent_ids
        and is_free(t.id, day, period, schedules)
        and t.id not in busy
    ]


# ---------- 4. commit ----------
def _original_subject(classes: Sequence[ClassTimetable], class_name: str, teacher_id: int,
                      day: str, period: str) -> str:
    names = set(class_name.split("+"))
    for cls in classes:
        if cls.class_name not in names:
            continue
        cell = cls.cell(day, period)
        if cell and cell.teacher_id == teacher_id:
            return cell.subject
    return ""


def build_substitution_records(on: Optional[date], absent: Sequence[AbsentTeacher],
                               assignments: AssignmentMatrix, teachers: Sequence[TeacherRef],
                               schedules: TeacherSchedules, classes: Sequence[ClassTimetable],
                               config: ScheduleConfig, remarks: Mapping[Tuple[int, str], str] | None = None,
                               extra_absent_ids: Iterable[int] = (),
                               extra_taken: Mapping[Tuple[str, int], Optional[int]] | None = None,
                               ) -> List[SubstitutionRow]:
    """
    extra_absent_ids / extra_taken describe rows already saved for the same
    date under other absent teachers: those teachers count as absent and
    their (period, substitute) pairs as occupied.
    """
    if on is None:
        raise CommitRejected("NO_DATE", "Please select a date")
    if not absent:
        raise CommitRejected("NO_ABSENT_TEACHERS", "No absent teachers selected")

    day = weekday_name(on)
    by_id = {t.id: t for t in teachers}
    own_ids = {a.teacher_id for a in absent}
    absent_ids = own_ids | set(extra_absent_ids)
    remarks = remarks or {}

    # (period, substitute) -> absent teacher
    taken: Dict[Tuple[str, int], Optional[int]] = dict(extra_taken or {})
    for (period, sub_id), other in taken.items():
        if sub_id in own_ids:
            name = by_id[sub_id].name if sub_id in by_id else str(sub_id)
            raise CommitRejected("SUBSTITUTE_ABSENT", f"{name} is already covering period {period} on {on.isoformat()}",
                                 {"teacher_id": sub_id, "period": period, "absent_teacher_id": other})

    rows: List[SubstitutionRow] = []
    for a in absent:
        chosen = assignments.get(a.teacher_id, {})
        for period in a.periods:
            sub_id = chosen.get(period)
            if sub_id is None:
                continue
            sub = by_id.get(sub_id)
            if sub is None:
                raise CommitRejected("UNKNOWN_TEACHER", "Substitute is not in the roster",
                                     {"teacher_id": sub_id, "period": period})
            if sub_id in absent_ids:
                raise CommitRejected("SUBSTITUTE_ABSENT", f"{sub.name} is absent on {on.isoformat()}",
                                     {"teacher_id": sub_id, "period": period})
            if not is_free(sub_id, day, period, schedules):
                raise CommitRejected("SUBSTITUTE_BUSY", f"{sub.name} has a class in period {period}",
                                     {"teacher_id": sub_id, "period": period})
            if (period, sub_id) in taken:
                raise CommitRejected("DOUBLE_BOOKED", f"{sub.name} is already covering period {period}",
                                     {"teacher_id": sub_id, "period": period,
                                      "absent_teacher_id": taken[(period, sub_id)]})
            taken[(period, sub_id)] = a.teacher_id

            original_class = schedules.get(a.teacher_id, {}).get(day, {}).get(period, "")
            if original_class == FREE:
                original_class = ""
            rows.append(SubstitutionRow(
                date=on,
                absent_teacher_id=a.teacher_id,
                absent_teacher=a.name,
                period=period,
                original_class=original_class,
                original_subject=_original_subject(classes, original_class, a.teacher_id, day, period),
                substitute_teacher_id=sub.id,
                substitute_teacher=sub.name,
                remarks=remarks.get((a.teacher_id, period), ""),
            ))

    if not rows:
        raise CommitRejected("NO_SUBSTITUTIONS", "No substitutions to save")
    return rows


# ---------- 5. reporting ----------
def filter_records(records: Iterable[SubstitutionRow], date_from: Optional[date] = None,
                   date_to: Optional[date] = None, month: Optional[str] = None) -> List[SubstitutionRow]:
    out = []
    for r in records:
        if date_from and r.date < date_from:
            continue
        if date_to and r.date > date_to:
            continue
        if month and r.date.strftime("%Y-%m") != month:
            continue
        out.append(r)
    return out


def aggregate_substitute_stats(records: Iterable[SubstitutionRow], config: ScheduleConfig) -> List[SubstituteStats]:
    buckets: "OrderedDict[object, dict]" = OrderedDict()
    for r in records:
        key = r.substitute_teacher_id if r.substitute_teacher_id is not None else r.substitute_teacher
        b = buckets.setdefault(key, {"name": r.substitute_teacher, "id": r.substitute_teacher_id,
                                     "periods": 0, "minutes": 0.0, "dates": set()})
        b["periods"] += 1
        b["minutes"] += config.minutes_for(r.period)
        b["dates"].add(r.date)

    stats = [
        SubstituteStats(
            teacher=b["name"],
            teacher_id=b["id"],
            periods=b["periods"],
            hours=round(b["minutes"] / 60.0, 2),
            days=len(b["dates"]),
        )
        for b in buckets.values()
    ]
    stats.sort(key=lambda s: (-s.periods, s.teacher))
    return stats


def group_by_date(records: Iterable[SubstitutionRow]) -> List[Tuple[date, List[SubstitutionRow]]]:
    grouped: Dict[date, List[SubstitutionRow]] = {}
    for r in records:
        grouped.setdefault(r.date, []).append(r)
    for rows in grouped.values():
        rows.sort(key=lambda r: (r.absent_teacher, r.period))
    return sorted(grouped.items(), key=lambda kv: kv[0], reverse=True)
