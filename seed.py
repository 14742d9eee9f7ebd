import random
from datetime import datetime, timezone, timedelta

from portal import create_app
from portal.firebase_init import get_auth
from portal import firestore_dao as dao
from portal.firestore_models import (
    Attendance, Grade, HRProfile, SchoolClass, StudentProfile, TeacherProfile,
)

SUBJECTS = ['Mathematics', 'English', 'Science']


def seed_database():
    app = create_app()
    with app.app_context():
        auth = get_auth()
        rng = random.Random(42)
        password = 'password123'

        def create_firebase_user(email, display_name, role):
            try:
                fb_user = auth.create_user(email=email, password=password, display_name=display_name)
            except auth.EmailAlreadyExistsError:
                fb_user = auth.get_user_by_email(email)
            auth.set_custom_user_claims(fb_user.uid, {'role': role})
            return fb_user.uid

        print("Creating HR account...")
        hr_uid = create_firebase_user('hr@example.com', 'Hannah Reyes', 'hr')
        dao.create_user(HRProfile(id=hr_uid, email='hr@example.com', full_name='Hannah Reyes'))

        print("Creating teachers...")
        teachers = []
        for i, (name, dept) in enumerate([('Tom Baker', 'Mathematics'), ('Alice Moore', 'Languages')], start=1):
            email = f'teacher{i}@example.com'
            uid = create_firebase_user(email, name, 'teacher')
            teachers.append(dao.create_teacher(TeacherProfile(
                id=uid, email=email, full_name=name, department=dept,
                teacher_id=f'T{i:03d}', employee_id=f'E{i:03d}',
            )))

        print("Creating classes...")
        classes = []
        for class_id, teacher in (('10A', teachers[0]), ('10B', teachers[1])):
            classes.append(dao.create_class(SchoolClass(
                id=class_id, name=f'Grade {class_id}', code=class_id, grade_level='10',
                teacher_id=teacher.id, teacher_name=teacher.full_name, subject=SUBJECTS[0],
            )))
        dao.assign_teacher_to_classes(teachers[0].id, ['10A'], SUBJECTS[:2])
        dao.assign_teacher_to_classes(teachers[1].id, ['10B'], SUBJECTS[1:])

        print("Creating students, grades and attendance...")
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        for i in range(1, 11):
            email = f'student{i}@example.com'
            uid = create_firebase_user(email, f'Student {i}', 'student')
            student = dao.create_student(StudentProfile(
                id=uid, email=email, full_name=f'Student {i}', student_id=f'S{i:04d}',
                grade_level='10', gpa=round(rng.uniform(1.5, 4.0), 2),
                attendance_percentage=rng.randint(75, 100),
            ))
            school_class = classes[0] if i <= 5 else classes[1]
            dao.assign_student_to_class(student.id, school_class.id)

            for subject in SUBJECTS:
                dao.create_grade(Grade(
                    student_id=student.id, student_name=student.full_name,
                    teacher_id=school_class.teacher_id, subject=subject, term='First',
                    year=today.year,
                    test1=rng.randint(50, 100), test2=rng.randint(50, 100),
                    exam=rng.randint(45, 100), assignment=rng.randint(60, 100),
                ))

            for days_ago in range(10):
                dao.record_attendance(Attendance(
                    student_id=student.id, student_name=student.full_name,
                    class_id=school_class.id, class_name=school_class.name,
                    date=today - timedelta(days=days_ago),
                    status=rng.choices(['Present', 'Absent', 'Late', 'Excused'], [80, 8, 8, 4])[0],
                    recorded_by=f'{school_class.teacher_name} ({school_class.teacher_id})',
                ))

        print("\n" + "=" * 60)
        print("    Test accounts (password: password123)")
        print("=" * 60)
        print("  HR:       hr@example.com")
        print("  Teachers: teacher1@example.com (10A), teacher2@example.com (10B)")
        print("  Students: student1~5@example.com (10A), student6~10@example.com (10B)")
        print("=" * 60)
        print("Database seeded.")


if __name__ == '__main__':
    seed_database()
