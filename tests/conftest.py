"""
Shared pytest fixtures for the Quality Indicator Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org: Two sites, three divisions, five units, three employees
    - indicators: Three indicators in two categories, assigned to units
    - actors: One Actor per role (plus a head-of-unit and a fallback manager)
    - auth_headers: Builds the X-Actor-* headers for an Actor
"""

from types import SimpleNamespace

import pytest

from quality_indicators import create_app
from quality_indicators.auth import Actor
from quality_indicators.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Organization fixtures ────────────────────────────────────────────────


@pytest.fixture()
def org():
    """
    Build the hierarchy used across the suite and return the ids.

        RS Utama (site)
          Pelayanan Medis (division, managed by mgr)
            ICU             (mgr works here)
            IGD             (staff works here)
          Penunjang (division, no manager)
            Laboratorium    (headed by head)
            Radiologi
        RS Cabang (site)
          Farmasi Cabang (division)
            Farmasi
    """
    from quality_indicators.models.organization import Division, Employee, Site, Unit

    site = Site(site_code="RSU", name="RS Utama", address="Jl. Merdeka 1")
    branch = Site(site_code="RSC", name="RS Cabang")
    _db.session.add_all([site, branch])
    _db.session.flush()

    div_med = Division(site_id=site.id, code="MED", name="Pelayanan Medis")
    div_sup = Division(site_id=site.id, code="SUP", name="Penunjang")
    div_branch = Division(site_id=branch.id, code="FARC", name="Farmasi Cabang")
    _db.session.add_all([div_med, div_sup, div_branch])
    _db.session.flush()

    icu = Unit(site_id=site.id, division_id=div_med.id, unit_code="ICU", name="ICU")
    igd = Unit(site_id=site.id, division_id=div_med.id, unit_code="IGD", name="IGD")
    lab = Unit(site_id=site.id, division_id=div_sup.id, unit_code="LAB", name="Laboratorium")
    rad = Unit(site_id=site.id, division_id=div_sup.id, unit_code="RAD", name="Radiologi")
    far = Unit(site_id=branch.id, division_id=div_branch.id, unit_code="FAR", name="Farmasi")
    _db.session.add_all([icu, igd, lab, rad, far])
    _db.session.flush()

    mgr = Employee(site_id=site.id, nik="1001", full_name="Dr. Sari", unit_id=icu.id)
    head = Employee(site_id=site.id, nik="1002", full_name="Budi Santoso", unit_id=lab.id)
    staff = Employee(site_id=site.id, nik="1003", full_name="Ani", unit_id=igd.id)
    _db.session.add_all([mgr, head, staff])
    _db.session.flush()

    div_med.manager_id = mgr.id
    lab.head_of_unit_id = head.id
    _db.session.commit()

    return SimpleNamespace(
        site_id=site.id, branch_id=branch.id,
        div_med_id=div_med.id, div_sup_id=div_sup.id, div_branch_id=div_branch.id,
        icu_id=icu.id, igd_id=igd.id, lab_id=lab.id, rad_id=rad.id, far_id=far.id,
        mgr_id=mgr.id, head_id=head.id, staff_id=staff.id,
    )


@pytest.fixture()
def indicators(org):
    """
    hand: monthly, (N/D)*100 >= 80 %, weight 10   → ICU, IGD, Laboratorium
    fall: daily,   (N/D)*100 <  2 %,  weight 5    → ICU
    wait: monthly, N/D <= 60 day,      weight 0   → ICU, Farmasi
    """
    from quality_indicators.models.indicator import Indicator, IndicatorCategory, IndicatorUnit

    safety = IndicatorCategory(name="Keselamatan Pasien")
    service = IndicatorCategory(name="Pelayanan")
    _db.session.add_all([safety, service])
    _db.session.flush()

    hand = Indicator(
        category_id=safety.id, code="IMN-01", title="Kepatuhan kebersihan tangan",
        numerator_label="Jumlah tindakan sesuai", denominator_label="Jumlah peluang",
        target=80, target_comparator=">=", calculation_formula="(N/D)*100",
        target_weight=10, target_unit="percentage", entry_frequency="monthly",
    )
    fall = Indicator(
        category_id=safety.id, code="IMN-02", title="Insiden pasien jatuh",
        numerator_label="Pasien jatuh", denominator_label="Pasien dirawat",
        target=2, target_comparator="<", calculation_formula="(N/D)*100",
        target_weight=5, target_unit="percentage", entry_frequency="daily",
    )
    wait = Indicator(
        category_id=service.id, code="IMN-03", title="Waktu tunggu rawat jalan",
        numerator_label="Total menit tunggu", denominator_label="Jumlah pasien",
        target=60, target_comparator="<=", calculation_formula="N/D",
        target_weight=0, target_unit="day", entry_frequency="monthly",
    )
    _db.session.add_all([hand, fall, wait])
    _db.session.flush()

    for indicator_id, unit_id in [
        (hand.id, org.icu_id), (hand.id, org.igd_id), (hand.id, org.lab_id),
        (fall.id, org.icu_id),
        (wait.id, org.icu_id), (wait.id, org.far_id),
    ]:
        _db.session.add(IndicatorUnit(indicator_id=indicator_id, unit_id=unit_id))
    _db.session.commit()

    return SimpleNamespace(
        safety_id=safety.id, service_id=service.id,
        hand_id=hand.id, fall_id=fall.id, wait_id=wait.id,
    )


@pytest.fixture()
def actors(org):
    return SimpleNamespace(
        user=Actor(role="user", user_id="nurse.icu", unit_id=org.icu_id),
        manager=Actor(role="manager", user_id="mgr.med", employee_id=org.mgr_id),
        head=Actor(role="manager", user_id="head.lab", employee_id=org.head_id),
        staff_manager=Actor(role="manager", user_id="staff.igd", employee_id=org.staff_id),
        auditor=Actor(role="auditor", user_id="auditor.rsu", site_id=org.site_id),
        admin=Actor(role="admin", user_id="admin"),
    )


@pytest.fixture()
def auth_headers():
    """Return a builder: auth_headers(actor) → dict of X-Actor-* headers."""

    def _build(actor):
        headers = {"X-Actor-Id": actor.user_id, "X-Actor-Role": actor.role}
        if actor.unit_id is not None:
            headers["X-Actor-Unit-Id"] = str(actor.unit_id)
        if actor.employee_id is not None:
            headers["X-Actor-Employee-Id"] = str(actor.employee_id)
        if actor.site_id is not None:
            headers["X-Actor-Site-Id"] = str(actor.site_id)
        return headers

    return _build
