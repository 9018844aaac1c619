from flask_wtf import FlaskForm
from wtforms import StringField, validators

RECORD_FIELDS = ('studentName', 'studentId', 'courseDetails', 'grades')


def as_text(value):
    """
    JSON submissions may carry numbers; the length checks need text.
    """
    if value is None or isinstance(value, str):
        return value
    return str(value)


class RecordForm(FlaskForm):
    """
    Validates a student record submitted as JSON to the records API.
    """
    class Meta:
        csrf = False

    studentName = StringField('Student Name', [
        validators.DataRequired(),
        validators.Length(max=100, message='Student name must not be longer than 100 characters.')
    ], filters=[as_text])
    studentId = StringField('Student ID', [
        validators.DataRequired(),
        validators.Length(max=50, message='Student ID must not be longer than 50 characters.')
    ], filters=[as_text])
    courseDetails = StringField('Course Details', [
        validators.DataRequired()
    ], filters=[as_text])
    grades = StringField('Grades', [
        validators.DataRequired()
    ], filters=[as_text])

    def record_data(self, values):
        """
        Builds the block payload from the submitted JSON object, keeping each value exactly as received.
        The form only checks that the fields are present; its own field data may be cut down to one value.
        :param values: The JSON object of the request.
        :return: dictionary - the record, in a fixed key order.
        """
        return {name: values[name] for name in RECORD_FIELDS}
