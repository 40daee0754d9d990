from datetime import date, timedelta

from app.models.asesor import Asesor
from app.models.prospecto import Prospecto
from app.services import seguimiento_service
from app.services.follow_up import FollowUpEditor, cascade_dates, due_phase, phase_status

D = date(2026, 5, 4)


def days(n):
    return D + timedelta(days=n)


def test_cascade_from_offsets():
    assert cascade_dates(D, [2, 4, 7]) == [days(2), days(6), days(13)]


def test_editing_a_phase_moves_later_unpinned_phases():
    editor = FollowUpEditor(D, [2, 4, 7])
    assert editor.edit(1, days(5)) == [days(5), days(9), days(16)]


def test_saved_dates_are_pinned_and_survive_config_changes():
    editor = FollowUpEditor(D, [2, 4, 7], saved=(None, days(10), None))
    assert editor.dates == [days(2), days(10), days(17)]
    assert editor.apply_offsets([3, 4, 1]) == [days(3), days(10), days(11)]


def test_due_phase_needs_today_and_no_answer():
    dates = [days(2), days(6), days(13)]
    assert due_phase(dates, [None, None, None], days(2)) == 1
    assert due_phase(dates, ["llamado", None, None], days(2)) is None
    assert due_phase(dates, ["llamado", None, None], days(6)) == 2
    assert phase_status(dates, ["llamado", None, None], days(8))["status"] == "overdue"


def _prospecto(db, asesor_id=None, code="P-0001"):
    p = Prospecto(
        prospecto=code, nombre="Luis", telefono="0412", estado_prospecto="Activo",
        fecha_creacion=D, asesor_id=asesor_id,
    )
    db.add(p)
    db.commit()
    return p


def test_digest_groups_by_asesor_and_falls_back_to_general_email(db, emails):
    ana = Asesor(nombre="Ana")
    beto = Asesor(nombre="Beto")
    db.add_all([ana, beto])
    db.commit()
    _prospecto(db, ana.id, "P-0001")
    _prospecto(db, ana.id, "P-0002")
    _prospecto(db, beto.id, "P-0003")
    seguimiento_service.update_config(db, "prospectos", {
        "email_recordatorio": "ventas@boxisleep.com",
        "asesor_emails": [{"asesor_id": ana.id, "email": "ana@boxisleep.com"}],
    })
    db.commit()

    result = seguimiento_service.send_digest(db, "prospectos", emails, today=days(2))
    assert result == {"reminders": 3, "emails_sent": 2, "dropped": 0}
    recipients = sorted(e["to"] for e in emails.sent)
    assert recipients == ["ana@boxisleep.com", "ventas@boxisleep.com"]
    assert emails.sent[0]["subject"] == "Recordatorio de Seguimientos - BoxiSleep CRM"


def test_digest_without_recipient_drops_and_logs(db, emails, caplog):
    _prospecto(db)
    result = seguimiento_service.send_digest(db, "prospectos", emails, today=days(2))
    assert result == {"reminders": 1, "emails_sent": 0, "dropped": 1}
    assert emails.sent == []
    assert "descartados" in caplog.text


def test_failed_send_counts_as_dropped(db, email_service_cls):
    _prospecto(db)
    seguimiento_service.update_config(db, "prospectos", {"email_recordatorio": "ventas@boxisleep.com"})
    failing = email_service_cls(result=False)
    result = seguimiento_service.send_digest(db, "prospectos", failing, today=days(2))
    assert result["dropped"] == 1


def test_only_active_prospects_get_reminders(db):
    p = _prospecto(db)
    p.estado_prospecto = "Perdido"
    db.commit()
    assert seguimiento_service.due_reminders(db, "prospectos", days(2)) == []


def test_order_follow_up_uses_first_line_of_pending_orders(db, make_order):
    make_order(orden="7001", totals=(100, 200), fecha=D)
    make_order(orden="7002", totals=(100,), fecha=D, canal="cashea")  # En proceso
    reminders = seguimiento_service.due_reminders(db, "ordenes", days(2))
    assert [r["referencia"] for r in reminders] == ["7001"]


def test_prospect_follow_up_routes(client, headers, db):
    p = _prospecto(db)
    r = client.get(f"/prospectos/{p.id}/seguimiento", headers=headers)
    assert r.status_code == 200
    assert [f["fecha"] for f in r.json()["fases"]] == [str(days(2)), str(days(6)), str(days(13))]

    r = client.put(
        f"/prospectos/{p.id}/seguimiento",
        json={"fecha_seguimiento1": str(days(5)), "respuesta_seguimiento1": "No contesta"},
        headers=headers,
    )
    assert r.status_code == 200
    fases = r.json()["fases"]
    assert [f["fecha"] for f in fases] == [str(days(5)), str(days(9)), str(days(16))]
    assert fases[0]["fijada"] is True
    assert fases[1]["fijada"] is False

    # Cambiar la configuración mueve solo las fases no fijadas
    client.put("/seguimiento/config/prospectos", json={"dias_fase_2": 1}, headers=headers)
    r = client.get(f"/prospectos/{p.id}/seguimiento", headers=headers)
    assert [f["fecha"] for f in r.json()["fases"]] == [str(days(5)), str(days(6)), str(days(13))]


def test_order_follow_up_route_writes_all_lines(client, headers, db, make_order):
    lines = make_order(orden="7003", totals=(100, 200), fecha=D)
    r = client.put("/seguimiento/ordenes/7003", json={"respuesta_seguimiento1": "Pagará el viernes"}, headers=headers)
    assert r.status_code == 200
    for line in lines:
        db.refresh(line)
        assert line.respuesta_seguimiento1 == "Pagará el viernes"


def test_config_validation(client, headers):
    r = client.get("/seguimiento/config/clientes", headers=headers)
    assert r.status_code == 400
    r = client.put("/seguimiento/config/ordenes", json={"dias_fase_1": -1}, headers=headers)
    assert r.status_code == 400
