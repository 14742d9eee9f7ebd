from datetime import datetime, timezone

from flask_wtf import FlaskForm
from wtforms import Form, FieldList, FormField, StringField, TextAreaField, SelectField, SelectMultipleField, IntegerField, FloatField, DateField, BooleanField, SubmitField
from wtforms.validators import DataRequired, InputRequired, Email, Length, NumberRange, ValidationError, Optional

from portal.firestore_models import ATTENDANCE_STATUSES, TERMS, DEFAULT_GRADE_LEVEL, WeightedGrade
from portal.grading import DEFAULT_WEIGHTED_WEIGHTS

TERM_CHOICES = [(t, t) for t in TERMS]
STATUS_CHOICES = [(s, s) for s in ATTENDANCE_STATUSES]
GRADE_LEVEL_CHOICES = [(str(n), f'Grade {n}') for n in range(1, 13)]

_score = [InputRequired(message='Enter a score'), NumberRange(min=0, max=100, message='Scores must be between 0 and 100')]
_weight = [Optional(), NumberRange(min=0, max=100, message='Weights must be between 0 and 100')]


def _split(value):
    return [v.strip() for v in (value or '').split(',') if v.strip()]


class _PersonForm(FlaskForm):
    full_name = StringField('Full name', validators=[DataRequired(message='Enter a name'), Length(min=2, max=120)])
    email = StringField('Email', validators=[DataRequired(message='Enter an email address'), Email(message='Enter a valid email address')])
    phone = StringField('Phone', validators=[Optional(), Length(max=20)])
    address = StringField('Address', validators=[Optional(), Length(max=255)])
    date_of_birth = DateField('Date of birth', validators=[Optional()])

    def validate_phone(self, phone):
        if not phone.data:
            return
        cleaned = ''.join(filter(str.isdigit, phone.data))
        if len(cleaned) < 7:
            raise ValidationError('Enter a valid phone number.')


class StudentForm(_PersonForm):
    student_id = StringField('Student ID', validators=[Optional(), Length(max=40)])
    grade_level = SelectField('Grade level', choices=GRADE_LEVEL_CHOICES, default=DEFAULT_GRADE_LEVEL)
    class_id = StringField('Class', validators=[Optional(), Length(max=40)])
    parent_name = StringField('Parent name', validators=[Optional(), Length(max=120)])
    parent_email = StringField('Parent email', validators=[Optional(), Email(message='Enter a valid email address')])
    parent_phone = StringField('Parent phone', validators=[Optional(), Length(max=20)])
    emergency_contact = StringField('Emergency contact', validators=[Optional(), Length(max=120)])
    enrolled_subjects = StringField('Subjects (comma separated)', validators=[Optional()])
    gpa = FloatField('GPA', validators=[Optional(), NumberRange(min=0, max=4)])
    attendance_percentage = IntegerField('Attendance %', validators=[Optional(), NumberRange(min=0, max=100)])
    submit = SubmitField('Save')

    def apply_to(self, student):
        student.full_name = self.full_name.data
        student.email = self.email.data
        student.phone = self.phone.data or ''
        student.address = self.address.data or ''
        if self.date_of_birth.data:
            student.date_of_birth = _as_datetime(self.date_of_birth.data)
        if self.student_id.data:
            student.student_id = self.student_id.data
        student.grade_level = self.grade_level.data or DEFAULT_GRADE_LEVEL
        student.class_id = self.class_id.data or student.class_id
        student.parent_name = self.parent_name.data or ''
        student.parent_email = self.parent_email.data or ''
        student.parent_phone = self.parent_phone.data or ''
        student.emergency_contact = self.emergency_contact.data or ''
        student.enrolled_subjects = _split(self.enrolled_subjects.data)
        if self.gpa.data is not None:
            student.gpa = self.gpa.data
        if self.attendance_percentage.data is not None:
            student.attendance_percentage = self.attendance_percentage.data
        return student


class TeacherForm(_PersonForm):
    teacher_id = StringField('Teacher ID', validators=[Optional(), Length(max=40)])
    employee_id = StringField('Employee ID', validators=[Optional(), Length(max=40)])
    department = StringField('Department', validators=[DataRequired(message='Enter a department'), Length(max=120)])
    subjects = StringField('Subjects (comma separated)', validators=[Optional()])
    qualification = StringField('Qualification', validators=[Optional(), Length(max=200)])
    specialization = StringField('Specialization', validators=[Optional(), Length(max=200)])
    is_head_of_department = BooleanField('Head of department')
    submit = SubmitField('Save')

    def apply_to(self, teacher):
        teacher.full_name = self.full_name.data
        teacher.email = self.email.data
        teacher.phone = self.phone.data or ''
        teacher.address = self.address.data or ''
        if self.date_of_birth.data:
            teacher.date_of_birth = _as_datetime(self.date_of_birth.data)
        if self.teacher_id.data:
            teacher.teacher_id = self.teacher_id.data
        if self.employee_id.data:
            teacher.employee_id = self.employee_id.data
        teacher.department = self.department.data
        teacher.subjects = _split(self.subjects.data)
        teacher.qualification = self.qualification.data or ''
        teacher.specialization = self.specialization.data or ''
        teacher.is_head_of_department = bool(self.is_head_of_department.data)
        return teacher


class ClassForm(FlaskForm):
    class_id = StringField('Class ID', validators=[Optional(), Length(max=40)])
    name = StringField('Name', validators=[DataRequired(message='Enter a class name'), Length(max=120)])
    code = StringField('Code', validators=[Optional(), Length(max=40)])
    grade_level = SelectField('Grade level', choices=GRADE_LEVEL_CHOICES, default=DEFAULT_GRADE_LEVEL)
    subject = StringField('Subject', validators=[Optional(), Length(max=120)])
    teacher_id = StringField('Teacher', validators=[Optional(), Length(max=128)])
    room_number = StringField('Room', validators=[Optional(), Length(max=40)])
    schedule = StringField('Schedule', validators=[Optional(), Length(max=200)])
    term = SelectField('Term', choices=TERM_CHOICES, default='First')
    max_capacity = IntegerField('Capacity', default=30, validators=[Optional(), NumberRange(min=1, max=200)])
    submit = SubmitField('Save')

    def apply_to(self, school_class, teacher_name=''):
        school_class.name = self.name.data
        school_class.code = self.code.data or school_class.code or ''
        school_class.grade_level = self.grade_level.data
        school_class.subject = self.subject.data or ''
        school_class.teacher_id = self.teacher_id.data or ''
        school_class.teacher_name = teacher_name
        school_class.room_number = self.room_number.data or ''
        school_class.schedule = self.schedule.data or ''
        school_class.term = self.term.data
        school_class.max_capacity = self.max_capacity.data or school_class.max_capacity
        return school_class


class AssignTeacherForm(FlaskForm):
    teacher_id = StringField('Teacher', validators=[DataRequired(message='Choose a teacher')])
    class_ids = SelectMultipleField('Classes', choices=[], validate_choice=False)
    subjects = SelectMultipleField('Subjects', choices=[], validate_choice=False)
    submit = SubmitField('Assign')


class AssignStudentForm(FlaskForm):
    student_id = StringField('Student', validators=[DataRequired(message='Choose a student')])
    class_id = StringField('Class', validators=[DataRequired(message='Choose a class')])
    submit = SubmitField('Assign')


class GradeScoresForm(FlaskForm):
    """Component scores of a standard grade; used on its own to edit one."""
    test1 = FloatField('Test 1', validators=_score)
    test2 = FloatField('Test 2', validators=_score)
    exam = FloatField('Exam', validators=_score)
    assignment = FloatField('Assignment', validators=_score)
    remarks = TextAreaField('Remarks', validators=[Optional(), Length(max=500)])
    submit = SubmitField('Save grade')

    def apply_to(self, grade):
        grade.test1 = self.test1.data
        grade.test2 = self.test2.data
        grade.exam = self.exam.data
        grade.assignment = self.assignment.data
        grade.remarks = self.remarks.data or ''
        return grade


class GradeForm(GradeScoresForm):
    student_id = StringField('Student', validators=[DataRequired(message='Choose a student')])
    subject = StringField('Subject', validators=[DataRequired(message='Enter a subject'), Length(max=120)])
    term = SelectField('Term', choices=TERM_CHOICES, default='First')
    year = IntegerField('Year', validators=[DataRequired(message='Enter a year'), NumberRange(min=2000, max=2100)])


class WeightedScoresForm(FlaskForm):
    test1 = FloatField('Test 1', validators=_score)
    test2 = FloatField('Test 2', validators=_score)
    midterm = FloatField('Midterm', validators=_score)
    final_exam = FloatField('Final exam', validators=_score)
    project = FloatField('Project', validators=_score)
    class_participation = FloatField('Participation', validators=_score)
    homework = FloatField('Homework', validators=_score)

    test1_weight = FloatField('Test 1 weight', default=DEFAULT_WEIGHTED_WEIGHTS['test1'], validators=_weight)
    test2_weight = FloatField('Test 2 weight', default=DEFAULT_WEIGHTED_WEIGHTS['test2'], validators=_weight)
    midterm_weight = FloatField('Midterm weight', default=DEFAULT_WEIGHTED_WEIGHTS['midterm'], validators=_weight)
    final_exam_weight = FloatField('Final exam weight', default=DEFAULT_WEIGHTED_WEIGHTS['finalExam'], validators=_weight)
    project_weight = FloatField('Project weight', default=DEFAULT_WEIGHTED_WEIGHTS['project'], validators=_weight)
    class_participation_weight = FloatField('Participation weight', default=DEFAULT_WEIGHTED_WEIGHTS['classParticipation'], validators=_weight)
    homework_weight = FloatField('Homework weight', default=DEFAULT_WEIGHTED_WEIGHTS['homework'], validators=_weight)

    remarks = TextAreaField('Remarks', validators=[Optional(), Length(max=500)])
    submit = SubmitField('Save grade')

    def apply_to(self, weighted):
        for _, attr in WeightedGrade.COMPONENTS:
            setattr(weighted, attr, getattr(self, attr).data)
        weighted.weights = self.weights()
        weighted.remarks = self.remarks.data or ''
        return weighted

    def weights(self):
        weights = {}
        for key, attr in WeightedGrade.COMPONENTS:
            value = getattr(self, f'{attr}_weight').data
            weights[key] = DEFAULT_WEIGHTED_WEIGHTS[key] if value is None else value
        return weights

    def validate(self, extra_validators=None):
        if not super().validate(extra_validators=extra_validators):
            return False
        total = round(sum(self.weights().values()), 2)
        if total != 100:
            self.homework_weight.errors.append(f'Weights must add up to 100 (currently {total:g}).')
            return False
        return True


class WeightedGradeForm(WeightedScoresForm):
    student_id = StringField('Student', validators=[DataRequired(message='Choose a student')])
    subject = StringField('Subject', validators=[DataRequired(message='Enter a subject'), Length(max=120)])
    term = SelectField('Term', choices=TERM_CHOICES, default='First')
    year = IntegerField('Year', validators=[DataRequired(message='Enter a year'), NumberRange(min=2000, max=2100)])


class AttendanceForm(FlaskForm):
    student_id = StringField('Student', validators=[DataRequired(message='Choose a student')])
    class_id = StringField('Class', validators=[Optional(), Length(max=40)])
    date = DateField('Date', validators=[Optional()])
    status = SelectField('Status', choices=STATUS_CHOICES, default='Present')
    remarks = TextAreaField('Remarks', validators=[Optional(), Length(max=500)])
    submit = SubmitField('Record')


class AttendanceUpdateForm(FlaskForm):
    status = SelectField('Status', choices=STATUS_CHOICES, default='Present')
    remarks = TextAreaField('Remarks', validators=[Optional(), Length(max=500)])
    submit = SubmitField('Save')


class AttendanceRowForm(Form):
    # Rows are checked by ClassAttendanceForm.valid_rows, not by validate().
    student_id = StringField('Student')
    status = SelectField('Status', choices=STATUS_CHOICES, default='Present', validate_choice=False)
    remarks = StringField('Remarks')


class ClassAttendanceForm(FlaskForm):
    date = DateField('Date', validators=[Optional()])
    rows = FieldList(FormField(AttendanceRowForm))
    submit = SubmitField('Record attendance')

    def valid_rows(self):
        """Rows naming a student and a known status; the rest are skipped."""
        return [entry.form for entry in self.rows
                if entry.form.student_id.data and entry.form.status.data in ATTENDANCE_STATUSES]


class ProfileForm(FlaskForm):
    full_name = StringField('Full name', validators=[DataRequired(message='Enter a name'), Length(max=120)])
    phone = StringField('Phone', validators=[Optional(), Length(max=20)])
    address = StringField('Address', validators=[Optional(), Length(max=255)])
    avatar_url = StringField('Avatar URL', validators=[Optional(), Length(max=255)])
    submit = SubmitField('Save')

    def apply_to(self, profile):
        profile.full_name = self.full_name.data
        profile.phone = self.phone.data or ''
        profile.address = self.address.data or ''
        profile.avatar_url = self.avatar_url.data or ''
        return profile


class TeacherProfileForm(ProfileForm):
    department = StringField('Department', validators=[Optional(), Length(max=120)])
    qualification = StringField('Qualification', validators=[Optional(), Length(max=200)])
    specialization = StringField('Specialization', validators=[Optional(), Length(max=200)])

    def apply_to(self, teacher):
        super().apply_to(teacher)
        teacher.department = self.department.data or ''
        teacher.qualification = self.qualification.data or ''
        teacher.specialization = self.specialization.data or ''
        return teacher


def _as_datetime(day):
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
