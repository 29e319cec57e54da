from cbt.manage import main
from cbt.models.orm import UnlockCode, User


def test_init_db(capsys):
    assert main(["init-db"]) == 0
    assert "created" in capsys.readouterr().out


def test_create_admin(db, capsys):
    assert main(["create-admin", "--email", "Boss@Example.com", "--password", "pw", "--name", "The Boss"]) == 0
    admin = db.query(User).one()
    assert admin.email == "boss@example.com"
    assert admin.role == "admin"
    assert admin.password_hash != "pw"

    assert main(["create-admin", "--email", "boss@example.com", "--password", "pw"]) == 1
    assert "Email already registered" in capsys.readouterr().err


def test_generate_codes(db, admin_user, capsys):
    assert main(["generate-codes", "--quantity", "3", "--duration", "12", "--admin-email", "admin@example.com"]) == 0
    printed = capsys.readouterr().out.split()
    assert len(printed) == 3
    rows = db.query(UnlockCode).all()
    assert sorted(r.code for r in rows) == sorted(printed)
    assert {(r.duration, r.generated_by) for r in rows} == {(12, admin_user.id)}


def test_generate_codes_rejects_unknown_admin(db, student, capsys):
    assert main(["generate-codes", "--admin-email", "student@example.com"]) == 1
    assert db.query(UnlockCode).count() == 0
    assert main(["generate-codes", "--quantity", "500"]) == 1
    assert "Maximum 100 codes at once" in capsys.readouterr().err
