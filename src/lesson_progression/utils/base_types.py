import typing

UserId = typing.NewType("UserId", str)

LessonId = typing.NewType("LessonId", str)
UnitId = typing.NewType("UnitId", str)
AssessmentId = typing.NewType("AssessmentId", str)
QuestionId = typing.NewType("QuestionId", str)
AttemptId = typing.NewType("AttemptId", str)
CategoryName = typing.NewType("CategoryName", str)
IsoTimestamp = typing.NewType("IsoTimestamp", str)
