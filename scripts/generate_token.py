"""Print an access token for a user, for calling the API from curl or Postman."""
import argparse
from app.db import SessionLocal
from app import models
from app.security import create_access_token


def parse_args() -> argparse.Namespace:
	p = argparse.ArgumentParser(description='Generate an access token for an existing user.')
	p.add_argument('username', help='Username or email of the user')
	return p.parse_args()


def main():
	args = parse_args()
	db = SessionLocal()
	try:
		login = args.username.strip().lower()
		user = db.query(models.User).filter((models.User.username == login) | (models.User.email == login)).first()
		if not user:
			print(f'[ERROR] No user named {args.username}')
			return 1
		print(create_access_token(user))
		return 0
	finally:
		db.close()


if __name__ == '__main__':
	raise SystemExit(main())
