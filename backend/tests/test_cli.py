# Overview: Pytest coverage for the Flask CLI commands.

from pdv.extensions import db
from pdv.models import Employee
from pdv.services import sync_service


class TestSystemCommands:

    def test_init_creates_admin_once(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init", "--password", "s3cret"])
        assert result.exit_code == 0, result.output
        assert "Created administrator: admin" in result.output

        admin = db.session.query(Employee).filter_by(login="admin").one()
        assert admin.role == "ADMIN"

        result = runner.invoke(args=["system", "init"])
        assert "Using existing administrator" in result.output
        assert db.session.query(Employee).count() == 1


class TestEmployeeCommands:

    def test_create_and_list(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "employees", "create", "--name", "Ana Lima", "--login", "ana", "--password", "1234", "--role", "MANAGER",
        ])
        assert result.exit_code == 0, result.output
        assert "role: MANAGER" in result.output

        result = runner.invoke(args=["employees", "list"])
        assert "ana" in result.output
        assert "Ana Lima" in result.output

    def test_duplicate_login_fails(self, app, seller):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "employees", "create", "--name", "Other", "--login", "seller", "--password", "1234",
        ])
        assert result.exit_code != 0

    def test_rejects_unknown_role(self, app):
        result = app.test_cli_runner().invoke(args=[
            "employees", "create", "--name", "X", "--login", "x", "--password", "1234", "--role", "OWNER",
        ])
        assert result.exit_code != 0


class TestSyncCommands:

    def test_pending(self, app):
        sync_service.enqueue(method="POST", path="/api/sales", payload={"items": []})
        result = app.test_cli_runner().invoke(args=["sync", "pending"])
        assert result.exit_code == 0
        assert "1 pending write(s)" in result.output
        assert "/api/sales" in result.output
