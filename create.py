# create.py - bootstrap an agency admin, optionally with a client and project
from getpass import getpass
from reviewdesk import create_app
from reviewdesk.extensions import db
from reviewdesk.models.user import User
from reviewdesk.models.project import Project


def main():
    app = create_app()
    with app.app_context():
        db.create_all()
        email = input("Admin email: ").strip().lower()
        name = input("Full name: ").strip()
        password = getpass("Password: ")

        # Check existing
        if User.query.filter_by(email=email).first():
            print("User with that email already exists.")
            return

        user = User(name=name, email=email, role="admin")
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        print(f"Admin user {email} created successfully.")

        client_email = input("Client email (optional): ").strip().lower()
        if not client_email:
            return
        client = User.query.filter_by(email=client_email).first()
        if client is None:
            client = User(name=input("Client name: ").strip() or client_email, email=client_email, role="client")
            client.set_password(getpass("Client password: "))
            db.session.add(client)
            db.session.flush()
        project = Project(name=input("Project name: ").strip() or "First project", client_id=client.id)
        db.session.add(project)
        db.session.commit()
        print(f"Project #{project.id} created for {client_email}.")

if __name__ == "__main__":
    main()
