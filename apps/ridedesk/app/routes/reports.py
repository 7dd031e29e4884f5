import csv
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from io import StringIO
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..common import ok
from ..db import get_session
from ..models import RideRequest, User
from ..pricing import money

router = APIRouter()


class ReportFilters:
    def __init__(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        rider_id: Optional[int] = None,
        driver_id: Optional[int] = None,
    ):
        if from_date and to_date and to_date < from_date:
            raise HTTPException(status_code=400, detail="to_date must not be before from_date")
        self.from_date = from_date
        self.to_date = to_date
        self.rider_id = rider_id
        self.driver_id = driver_id

    def apply(self, stmt, column):
        # to_date is inclusive: everything before the next midnight
        if self.from_date:
            stmt = stmt.where(column >= datetime.combine(self.from_date, time.min))
        if self.to_date:
            stmt = stmt.where(column < datetime.combine(self.to_date + timedelta(days=1), time.min))
        if self.rider_id is not None:
            stmt = stmt.where(RideRequest.rider_id == self.rider_id)
        if self.driver_id is not None:
            stmt = stmt.where(RideRequest.driver_id == self.driver_id)
        return stmt


def _amount(v) -> float:
    return float(money(v))


def _ride_row(r: RideRequest) -> dict:
    return {
        "id": r.id,
        "riderName": r.rider.full_name if r.rider else None,
        "driverName": r.driver.full_name if r.driver else None,
        "serviceName": r.service.name if r.service else None,
        "status": r.status,
        "paymentType": r.payment_type,
        "totalAmount": _amount(r.total_amount),
        "adminCommission": _amount(r.admin_commission),
        "fleetCommission": _amount(r.fleet_commission),
        "driverEarning": _amount(r.driver_earning),
        "completedAt": r.completed_at.isoformat() if r.completed_at else None,
        "createdAt": r.created_at.isoformat() if r.created_at else None,
    }


def _completed_rides(s: Session, f: ReportFilters) -> list:
    stmt = select(RideRequest).where(RideRequest.status == "completed")
    stmt = f.apply(stmt, RideRequest.completed_at)
    return s.execute(stmt.order_by(RideRequest.completed_at.desc(), RideRequest.id.desc())).scalars().all()


def _sum(rides, attr: str) -> float:
    return _amount(sum((money(getattr(r, attr)) for r in rides), Decimal("0")))


def admin_earning(s: Session, f: ReportFilters) -> dict:
    rides = _completed_rides(s, f)
    return {
        "rideRequests": [_ride_row(r) for r in rides],
        "totals": {
            "rides": len(rides),
            "totalAmount": _sum(rides, "total_amount"),
            "adminCommission": _sum(rides, "admin_commission"),
            "fleetCommission": _sum(rides, "fleet_commission"),
        },
    }


def driver_earning(s: Session, f: ReportFilters) -> dict:
    rides = _completed_rides(s, f)
    per_driver: dict[int, dict] = {}
    for r in rides:
        if r.driver_id is None:
            continue
        entry = per_driver.setdefault(r.driver_id, {
            "driverId": r.driver_id,
            "driverName": r.driver.full_name if r.driver else None,
            "totalRides": 0,
            "totalAmount": Decimal("0"),
            "driverEarning": Decimal("0"),
        })
        entry["totalRides"] += 1
        entry["totalAmount"] += money(r.total_amount)
        entry["driverEarning"] += money(r.driver_earning)
    drivers = sorted(per_driver.values(), key=lambda d: d["driverEarning"], reverse=True)
    for d in drivers:
        d["totalAmount"] = _amount(d["totalAmount"])
        d["driverEarning"] = _amount(d["driverEarning"])
    return {
        "rideRequests": [_ride_row(r) for r in rides],
        "totals": {
            "rides": len(rides),
            "totalAmount": _sum(rides, "total_amount"),
            "driverEarning": _sum(rides, "driver_earning"),
        },
        "drivers": drivers,
    }


def service_wise(s: Session, f: ReportFilters) -> dict:
    rides = _completed_rides(s, f)
    stats: dict[Optional[int], dict] = {}
    for r in rides:
        entry = stats.setdefault(r.service_id, {
            "serviceId": r.service_id,
            "serviceName": r.service.name if r.service else None,
            "totalRides": 0,
            "totalAmount": Decimal("0"),
        })
        entry["totalRides"] += 1
        entry["totalAmount"] += money(r.total_amount)
    service_stats = sorted(stats.values(), key=lambda e: e["totalRides"], reverse=True)
    for e in service_stats:
        e["totalAmount"] = _amount(e["totalAmount"])
    return {"serviceStats": service_stats, "rideRequests": [_ride_row(r) for r in rides]}


def driver_report(s: Session, f: ReportFilters) -> list:
    """Every driver with their rides of any status in the window."""
    dstmt = select(User).where(User.user_type == "driver")
    if f.driver_id is not None:
        dstmt = dstmt.where(User.id == f.driver_id)
    drivers = s.execute(dstmt.order_by(User.id)).scalars().all()
    rstmt = f.apply(select(RideRequest).where(RideRequest.driver_id.is_not(None)), RideRequest.created_at)
    by_driver: dict[int, list] = {}
    for r in s.execute(rstmt.order_by(RideRequest.created_at.desc(), RideRequest.id.desc())).scalars():
        by_driver.setdefault(r.driver_id, []).append(_ride_row(r))
    return [
        {
            "id": d.id,
            "name": d.full_name,
            "email": d.email,
            "contactNumber": d.contact_number,
            "status": d.status,
            "driverRideRequests": by_driver.get(d.id, []),
        }
        for d in drivers
    ]


REPORTS: dict[str, Callable[[Session, ReportFilters], object]] = {
    "admin-earning": admin_earning,
    "driver-earning": driver_earning,
    "service-wise": service_wise,
    "driver-report": driver_report,
}

RIDE_COLUMNS = [
    ("id", "id"),
    ("rider", "riderName"),
    ("driver", "driverName"),
    ("service", "serviceName"),
    ("status", "status"),
    ("payment_type", "paymentType"),
    ("total_amount", "totalAmount"),
    ("admin_commission", "adminCommission"),
    ("fleet_commission", "fleetCommission"),
    ("driver_earning", "driverEarning"),
    ("completed_at", "completedAt"),
]


def _report_or_404(report_type: str):
    fn = REPORTS.get(report_type)
    if fn is None:
        raise HTTPException(status_code=404, detail="unknown report type")
    return fn


def _csv_rows(report_type: str, data) -> tuple[list, list]:
    if report_type == "service-wise":
        header = ["service_id", "service", "total_rides", "total_amount"]
        rows = [[e["serviceId"], e["serviceName"], e["totalRides"], f"{e['totalAmount']:.2f}"] for e in data["serviceStats"]]
        return header, rows
    if report_type == "driver-report":
        header = ["driver_id", "name", "email", "status", "total_rides", "completed_rides", "total_revenue"]
        rows = []
        for d in data:
            rides = d["driverRideRequests"]
            completed = [r for r in rides if r["status"] == "completed"]
            revenue = sum(r["totalAmount"] for r in rides)
            rows.append([d["id"], d["name"], d["email"] or "", d["status"], len(rides), len(completed), f"{revenue:.2f}"])
        return header, rows
    header = [name for name, _ in RIDE_COLUMNS]
    rows = []
    for r in data["rideRequests"]:
        rows.append([
            f"{r[key]:.2f}" if isinstance(r[key], float) else (r[key] if r[key] is not None else "")
            for _, key in RIDE_COLUMNS
        ])
    return header, rows


@router.get("/reports/{report_type}")
def get_report(report_type: str, f: ReportFilters = Depends(), s: Session = Depends(get_session)):
    return ok(_report_or_404(report_type)(s, f))


@router.get("/reports/{report_type}/export")
def export_report(report_type: str, f: ReportFilters = Depends(), s: Session = Depends(get_session)):
    """Export a report as CSV."""
    data = _report_or_404(report_type)(s, f)
    header, rows = _csv_rows(report_type, data)
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(header)
    w.writerows(rows)
    filename = report_type.replace("-", "_") + "_report.csv"
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    return Response(content=buf.getvalue(), media_type="text/csv", headers=headers)
